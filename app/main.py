from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.database import Database
from app.init_admin import create_admin
from app.logging_config import configure_logging
from app.api import auth, roles, users, courses, assessments, assessment_admin, websocket

def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the application around a database handle opened on startup"""
    database = database or Database(settings.database_url, echo=settings.sql_echo)

    app = FastAPI(
        title="LMS Assessment API",
        description="Courses, assessments, manual grading and review approval",
        version="1.0.0"
    )
    app.state.database = database

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(auth.router)
    app.include_router(roles.router)
    app.include_router(users.router)
    app.include_router(courses.router)
    app.include_router(assessments.router)
    app.include_router(assessment_admin.router)
    app.include_router(websocket.router)

    @app.on_event("startup")
    async def startup_event():
        logger = configure_logging(settings.log_level)
        database.open()
        database.create_all()
        create_admin(database)
        logger.info("LMS API started")

    @app.on_event("shutdown")
    async def shutdown_event():
        database.close()

    @app.get("/")
    async def root():
        return {"message": "LMS Assessment API"}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "database": "open" if database.is_open else "closed"}

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
