#provisioning_engine\api\container.py
from provisioning_engine.config import settings
from provisioning_engine.container import get_provisioner as _get_provisioner


def get_provisioner():
    return _get_provisioner()


def get_settings():
    return settings
