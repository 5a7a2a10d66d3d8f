from pyfilehub.config.settings import ConfigManager, get_config_manager
from pyfilehub.logging.setup import setup_logging, get_logger
from pyfilehub.core.auth import CredentialStore, SessionAuthenticator
from pyfilehub.core.service import StorageService
from pyfilehub.core.storage.artifacts import LocalArtifactBackend
from pyfilehub.core.storage.catalog import FileCatalog
from pyfilehub.core.storage.database import Database
from pyfilehub.core.api.errors import register_exception_handlers
from pyfilehub.core.api.router_auth import router as auth_router
from pyfilehub.core.api.router_files import router as files_router
from dataclasses import dataclass
from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging


# Use basic logging before config is loaded
_basic_logger = logging.getLogger(__name__)

logger = get_logger(__name__)


@dataclass
class Components:
    """Everything a running instance needs, wired from one configuration."""

    database: Database
    credential_store: CredentialStore
    authenticator: SessionAuthenticator
    storage_service: StorageService


def load_config(config_manager: ConfigManager | None = None) -> ConfigManager:
    """Load configuration and set up logging from it."""
    config_manager = config_manager or get_config_manager()
    try:
        config_manager.load(config_manager.get_config_path())
        _basic_logger.info("Configuration loaded successfully")
    except Exception as e:
        _basic_logger.error(f"Failed to load configuration: {e}")
        raise

    setup_logging(config_manager.logging_config)
    return config_manager


async def build_components(config_manager: ConfigManager) -> Components:
    """Construct the stores and services and make sure the schema exists."""
    database = Database(config_manager.database_url)
    await database.create_all()

    authenticator = SessionAuthenticator(
        config_manager.token_secret,
        algorithm=config_manager.token_algorithm,
    )
    artifacts = LocalArtifactBackend(config_manager.artifacts_base_dir)
    storage_service = StorageService(
        FileCatalog(database),
        artifacts,
        max_file_size_bytes=config_manager.max_file_size_bytes,
    )

    return Components(
        database=database,
        credential_store=CredentialStore(database),
        authenticator=authenticator,
        storage_service=storage_service,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.debug("Starting up the application")

    config_manager = load_config(app.state.config_manager)
    components = await build_components(config_manager)

    app.state.config_manager = config_manager
    app.state.database = components.database
    app.state.credential_store = components.credential_store
    app.state.authenticator = components.authenticator
    app.state.storage_service = components.storage_service

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.debug("Shutting down the application")
    await app.state.database.dispose()
    logger.info("Application shutdown complete")


def create_app(config_manager: ConfigManager | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Configuration is read when the application starts, not here, so the
    module can be imported before the environment is set up.
    """
    app = FastAPI(title="PyFileHub", lifespan=lifespan)
    app.state.config_manager = config_manager

    register_exception_handlers(app)

    @app.get("/api/health")
    def health_check():
        """Liveness check."""
        return {"status": "OK"}

    # Include routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(files_router, prefix="/api")

    return app


app = create_app()


def run():
    """Entry point for the ``pyfilehub`` command."""
    import uvicorn

    config_manager = load_config()
    uvicorn.run(app, host=config_manager.api_host,
                port=config_manager.api_port)


if __name__ == "__main__":
    run()
