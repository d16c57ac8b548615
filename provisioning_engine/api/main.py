from fastapi import FastAPI
from provisioning_engine.api.routes.stacks import router as stacks_router

app = FastAPI(title="Provisioning Engine API")

@app.get("/health")
def health():
    return {"status": "ok"}

app.include_router(stacks_router)
