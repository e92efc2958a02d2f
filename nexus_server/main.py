from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from nexus_server import config
from nexus_server.api.routes import health, projects, versions, execution, tasks

app = FastAPI(
    title="NexusQuest API",
    description="Projects, version snapshots, code execution and tasks for the NexusQuest IDE",
    version=config.APP_VERSION
)

# CORS middleware: only the configured frontend origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.app_version = config.APP_VERSION

# Register routers
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(projects.router, prefix="/api/projects", tags=["Projects"])
app.include_router(versions.router, prefix="/api/versions", tags=["Versions"])
app.include_router(execution.router, prefix="/api/execution", tags=["Execution"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["Tasks"])
app.include_router(tasks.progress_router, prefix="/api/task-progress", tags=["Task Progress"])


def run():
    print("==================================================")
    print(f"NexusQuest Server v{config.APP_VERSION}")
    print("==================================================")
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
