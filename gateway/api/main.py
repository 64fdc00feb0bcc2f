"""
Gateway HTTP API: account details, scoped broadcast, operation preparation,
throttled registration and token revocation.
"""

import json
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse

from .auth import Session, authenticate
from .schemas import (
    BroadcastRequest,
    BroadcastResponse,
    ErrorResponse,
    HealthResponse,
    MeResponse,
    MetadataUpdateRequest,
    PrepareRequest,
    PrepareResponse,
    RegisterRequest,
    RegisterResponse,
    RevokeResponse,
)
from ..core import config, dao, hooks
from ..core.broadcast import BroadcastDispatcher, BroadcastPipeline, decode_transaction
from ..core.db import health_check
from ..core.errors import (
    AuthenticationError,
    AuthorshipViolation,
    GatewayError,
    InvalidRateLimiterConfig,
    RateLimited,
    RemoteBroadcastFailure,
    ScopeViolation,
    UnknownOperation,
    ValidationFailed,
)
from ..core.ledger import LedgerClient, LedgerError
from ..core.operation import describe_remote_error
from ..core.rate_limit import RegistrationRateLimiter, SqliteRateWindowStore
from ..core.registry import registry
from ..core.schema import OperationRequest
from util.logging import logger, audit_event

ERROR_STATUS = {
    UnknownOperation: 400,
    ValidationFailed: 400,
    ScopeViolation: 401,
    AuthorshipViolation: 401,
    AuthenticationError: 401,
    RateLimited: 429,
    InvalidRateLimiterConfig: 503,
    RemoteBroadcastFailure: 500,
}

# Initialize the FastAPI application
app = FastAPI(
    title="Scoped Broadcast Gateway",
    version=config.VERSION,
    description="Scoped, author-checked operation broadcasting on behalf of ledger users",
    docs_url="/docs" if config.debug_enabled() else None,
    redoc_url="/redoc" if config.debug_enabled() else None
)


def configure(ledger: Optional[LedgerClient] = None,
              limiter: Optional[RegistrationRateLimiter] = None) -> None:
    """Wire the ledger client, broadcast pipeline and registration limiter."""
    ledger = ledger or config.get_ledger_client()
    hooks.use_ledger(ledger)

    if limiter is None:
        allowed_uses, window_size, window_unit = config.get_registration_limits()
        limiter = RegistrationRateLimiter(SqliteRateWindowStore(), allowed_uses, window_size, window_unit)

    dispatcher = BroadcastDispatcher(
        ledger,
        registry=registry,
        signing_material={"posting": config.BROADCASTER_POSTING_KEY},
    )
    app.state.ledger = ledger
    app.state.pipeline = BroadcastPipeline(dispatcher, registry=registry)
    app.state.limiter = limiter

    for issue in config.validate_rate_limit_config():
        logger.error(f"Configuration issue: {issue}")


configure()


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    status_code = ERROR_STATUS.get(type(exc), 500)
    body = ErrorResponse(**exc.to_dict()).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check()
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=config.VERSION,
        db_health=db_health,
        operation_count=len(registry)
    )


async def _get_account(request: Request, user: str):
    try:
        accounts = await request.app.state.ledger.get_accounts([user])
    except LedgerError as e:
        logger.error(f"me: API request failed for {user}: {e}")
        raise RemoteBroadcastFailure("API request failed", remote_error=e) from e
    return accounts[0] if accounts else None


@app.get("/api/me", response_model=MeResponse)
async def get_me(request: Request, session: Session = Depends(authenticate())):
    """Account details and effective scope of the current token."""
    account = await _get_account(request, session.user)
    user_metadata = None
    if session.role == "app" and session.proxy:
        user_metadata = dao.get_user_metadata(session.proxy, session.user)

    return MeResponse(
        user=session.user,
        id=session.user,
        name=session.user,
        account=account,
        scope=session.effective_scope,
        user_metadata=user_metadata,
    )


@app.put("/api/me", response_model=MeResponse)
async def update_me(body: MetadataUpdateRequest, request: Request,
                    session: Session = Depends(authenticate("app"))):
    """Replace the app's user_metadata object for the current user."""
    account = await _get_account(request, session.user)
    user_metadata = body.user_metadata

    if not isinstance(user_metadata, dict):
        return JSONResponse(status_code=400, content={
            "error": "invalid_request",
            "error_description": "User metadata must be an object",
        })

    size = len(json.dumps(user_metadata).encode("utf-8"))
    if size > config.USER_METADATA_MAX_SIZE:
        return JSONResponse(status_code=413, content={
            "error": "invalid_request",
            "error_description": f"User metadata object must not exceed {config.USER_METADATA_MAX_SIZE / 1000000} MB",
        })

    dao.update_user_metadata(session.proxy, session.user, user_metadata)
    logger.info(f"Updated metadata of {session.user} for app {session.proxy} ({size} bytes)")

    return MeResponse(
        user=session.user,
        id=session.user,
        name=session.user,
        account=account,
        scope=session.effective_scope,
        user_metadata=user_metadata,
    )


def _parse_batch(operations):
    try:
        return [OperationRequest.from_pair(pair) for pair in operations]
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": "invalid_request", "error_description": str(e)})


@app.post("/api/broadcast", response_model=BroadcastResponse)
async def broadcast(body: BroadcastRequest, request: Request, session: Session = Depends(authenticate("app"))):
    """Broadcast a batch of operations for the token's user."""
    batch = _parse_batch(body.operations)
    if isinstance(batch, JSONResponse):
        return batch

    logger.info(f"Broadcast transaction for @{session.user} from app @{session.proxy}")
    outcome = await request.app.state.pipeline.broadcast(
        batch, session.grant, session.user, client_id=session.proxy
    )
    return BroadcastResponse(result=outcome.result or {})


@app.post("/api/prepare", response_model=PrepareResponse)
async def prepare(body: PrepareRequest, request: Request, session: Session = Depends(authenticate())):
    """Validate and normalize one operation, or a base64 ``tx`` batch, without broadcasting."""
    if body.operation == "tx":
        batch = decode_transaction(body.base64)
    else:
        batch = [OperationRequest(body.operation, body.params)]

    prepared = await request.app.state.pipeline.prepare(batch, session.user)
    return PrepareResponse(operations=[p.to_dict() for p in prepared])


@app.post("/api/register", response_model=RegisterResponse)
async def register(body: RegisterRequest, request: Request):
    """Create a sponsored account; throttled per client IP."""
    ip = request.client.host if request.client else "unknown"
    limiter: RegistrationRateLimiter = request.app.state.limiter

    try:
        limiter.enforce(ip)
    except RateLimited as e:
        logger.warning(f"Registration refused for {ip}: {e.error_description}")
        return JSONResponse(status_code=429, content={"success": False, "message": e.error_description})

    try:
        await request.app.state.ledger.create_account(
            new_account_name=body.name,
            password=body.password,
            creator=config.REGISTRATION_SPONSOR,
            fee=config.REGISTRATION_FEE,
            delegation=config.REGISTRATION_DELEGATION,
            json_metadata=json.dumps({"registered_via": "gateway"}),
        )
    except LedgerError as e:
        message = describe_remote_error(e)
        logger.error(f"Account creation failed for {body.name}: {message}")
        return JSONResponse(status_code=500, content={
            "success": False,
            "message": "Something went wrong",
            "error": message,
        })

    limiter.record_use(ip)
    audit_event("register.account_created", {"ip": ip, "account": body.name})
    return RegisterResponse(
        success=True,
        message=f"congratulations, you successfully made an account, your sponsor was {config.REGISTRATION_SPONSOR}"
    )


@app.api_route("/api/token/revoke/{type}", methods=["GET", "POST"], response_model=RevokeResponse)
@app.api_route("/api/token/revoke/{type}/{client_id}", methods=["GET", "POST"], response_model=RevokeResponse)
async def revoke_tokens(type: str, client_id: Optional[str] = None,
                        session: Session = Depends(authenticate("user"))):
    """Revoke app tokens.

    ``app``: all tokens of an app, only for its owner. ``user``: the current
    user's tokens, for every app or for ``client_id`` only.
    """
    revoked = 0
    if type == "app" and client_id:
        app_record = dao.get_app(client_id)
        if app_record and app_record.owner == session.user:
            revoked = dao.revoke_tokens(client_id=client_id)
    elif type == "user":
        revoked = dao.revoke_tokens(user=session.user, client_id=client_id)

    audit_event("token.revoke", {"user": session.user, "type": type, "client_id": client_id, "revoked": revoked})
    return RevokeResponse(success=True, revoked=revoked)
