from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from healthcast.api.routes import load_saved_models, router
from healthcast.utils.logger import get_logger

logger = get_logger(__name__)

app = FastAPI(title="Healthcast API")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.on_event("startup")
def startup_tasks():
    load_saved_models()
    logger.info("Application Startup Complete.")


@app.get("/")
def read_root():
    return {"status": "online", "message": "Healthcast Disease Risk & Validation API"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
