from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from neuralagent import __version__
from neuralagent.api.routes import auth_router, status_router, subscription_router

app = FastAPI(
    title="NeuralAgent Session API",
    description="Session, subscription and entitlement state for the desktop app",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api")
app.include_router(subscription_router, prefix="/api")
app.include_router(status_router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "NeuralAgent Session API", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
