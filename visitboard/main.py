import argparse
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Depends, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .accounts import AccountStore, make_pwd_context
from .config_manager import config as default_config, ConfigManager
from .database import Database
from .errors import DuplicateUsername, InvalidCredentials, InvalidPassword, StoreError
from .messages import MessageLog
from .models import Credentials, LoginResponse, Message, SendMessageRequest, StatusResponse

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(message)s'


def setup_logging(logging_config: dict):
    """Console handler always, file handler when a log file is configured"""
    root = logging.getLogger('visitboard')
    root.setLevel(getattr(logging, str(logging_config.get('level', 'INFO')).upper(), logging.INFO))
    if root.handlers:
        return root

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console_handler)

    log_file = logging_config.get('file')
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)
    return root


def create_app(config: Optional[ConfigManager] = None, db_path: Optional[str] = None) -> FastAPI:
    config = config or default_config
    db_config = config.get_database_config()
    security_config = config.get_security_config()
    seed_config = config.get_seed_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database(db_path or db_config.get('path', 'users.db'), timeout=db_config.get('timeout', 5.0))
        db.init_db()
        accounts = AccountStore(db, make_pwd_context(security_config.get('schemes', ['bcrypt_sha256']),
                                                     security_config.get('bcrypt_rounds')))
        if seed_config.get('enabled', True):
            accounts.seed_default_account(seed_config.get('username', 'testuser'),
                                          seed_config.get('password', 'password123'))
        app.state.db = db
        app.state.accounts = accounts
        app.state.messages = MessageLog(db)
        try:
            yield
        finally:
            db.close()

    app = FastAPI(title="Visitboard", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get_server_config().get('cors_origins', []),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DuplicateUsername)
    async def duplicate_username_handler(request: Request, exc: DuplicateUsername):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": "Username already exists"})

    @app.exception_handler(InvalidCredentials)
    async def invalid_credentials_handler(request: Request, exc: InvalidCredentials):
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": str(exc)})

    @app.exception_handler(InvalidPassword)
    async def invalid_password_handler(request: Request, exc: InvalidPassword):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            content={"detail": "Internal server error"})

    _add_routes(app)
    return app


def get_accounts(request: Request) -> AccountStore:
    return request.app.state.accounts


def get_messages(request: Request) -> MessageLog:
    return request.app.state.messages


def _add_routes(app: FastAPI):
    @app.get("/")
    def read_root():
        return {"message": "Visitboard API running"}

    @app.post("/api/register", response_model=StatusResponse, status_code=status.HTTP_201_CREATED)
    def register(credentials: Credentials, accounts: AccountStore = Depends(get_accounts)):
        accounts.register(credentials.username, credentials.password)
        return StatusResponse()

    @app.post("/api/login", response_model=LoginResponse)
    def login(credentials: Credentials,
              accounts: AccountStore = Depends(get_accounts),
              message_log: MessageLog = Depends(get_messages)):
        user = accounts.authenticate(credentials.username, credentials.password)
        user.visited_count = accounts.record_visit(user.username)
        logger.info(f"User {user.username} logged in (visit {user.visited_count})")
        return LoginResponse(user=user, messages=message_log.list_all())

    @app.post("/api/messages", response_model=StatusResponse, status_code=status.HTTP_201_CREATED)
    def send_message(payload: SendMessageRequest, message_log: MessageLog = Depends(get_messages)):
        message_log.append(payload.username, payload.message)
        return StatusResponse()

    @app.get("/api/messages", response_model=List[Message])
    def list_messages(message_log: MessageLog = Depends(get_messages)):
        return message_log.list_all()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Visitboard chat server")
    parser.add_argument('--config', type=str, default=None, help='Path to a JSON config file')
    parser.add_argument('--host', type=str, default=None, help='Address to listen on')
    parser.add_argument('--port', type=int, default=None, help='Port to listen on')
    parser.add_argument('--db-path', type=str, default=None, help='SQLite database file')
    args = parser.parse_args(argv)

    if args.config:
        default_config.load_config(args.config)
    server_config = default_config.get_server_config()
    setup_logging(default_config.get_logging_config())

    host = args.host or server_config.get('host', '127.0.0.1')
    port = args.port if args.port is not None else server_config.get('port', 9000)
    logger.info(f"Server starting at {host}:{port}")
    uvicorn.run(create_app(default_config, db_path=args.db_path), host=host, port=port)


app = create_app()

if __name__ == "__main__":
    main()
