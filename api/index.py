import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum
from starlette.concurrency import run_in_threadpool

from accounts.models import BankDetailsView, Identity, User
from config import settings, validate_security_settings
from container import Services, build_services
from ledger.errors import (
    AuthenticationError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from ledger.models import WalletSummary
from redemptions.models import RedemptionRequest
from submissions.models import Submission

logger = logging.getLogger(__name__)


def _to_http(e: ServiceError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": str(e), "details": e.errors},
        )
    if isinstance(e, (InsufficientFundsError, InvalidAmountError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, AuthenticationError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, InvalidStateTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    logger.error("Unhandled service error: %s", e)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


def current_identity(
    x_user_email: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_image: Optional[str] = Header(default=None),
) -> Identity:
    """Identity asserted by the authenticating gateway in front of this API."""
    if not x_user_email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        return Identity(email=x_user_email, name=x_user_name, image=x_user_image)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def create_app(services: Services) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        validate_security_settings(services.settings)
        yield
        services.shutdown()

    app = FastAPI(
        title="Rewards API",
        description="Submission review, points wallet and redemptions",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.services = services

    def current_user(identity: Identity = Depends(current_identity)) -> User:
        return services.accounts.find_or_create(identity)

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": "rewards"}

    @app.post("/submissions", response_model=Submission, status_code=status.HTTP_201_CREATED)
    def create_submission(payload: dict = Body(...), user: User = Depends(current_user)):
        try:
            return services.submissions.create(
                user.id,
                question=payload.get("question"),
                answer=payload.get("answer"),
                artifact_url=payload.get("artifactUrl"),
                image_data=payload.get("imageData"),
                translated_question=payload.get("englishQuestion"),
                translated_answer=payload.get("englishAnswer"),
            )
        except ServiceError as e:
            raise _to_http(e)

    @app.get("/submissions", response_model=list[Submission])
    def list_submissions(mine: int = 0, user: User = Depends(current_user)):
        if mine:
            return services.submissions.list_for_user(user.id)
        return services.submissions.list_recent()

    @app.post("/n8n/submission-status")
    async def submission_status(request: Request, x_signature: Optional[str] = Header(default=None)):
        raw = await request.body()
        try:
            # receive_verdict blocks on the store lock; keep it off the event loop
            await run_in_threadpool(services.dispatcher.receive_verdict, raw, x_signature)
        except ServiceError as e:
            raise _to_http(e)
        return {"success": True}

    @app.get("/wallet/me", response_model=WalletSummary)
    def get_wallet(user: User = Depends(current_user)):
        return services.ledger.get_summary(user.id)

    @app.post("/redemptions", response_model=RedemptionRequest, status_code=status.HTTP_201_CREATED)
    def create_redemption(payload: dict = Body(...), user: User = Depends(current_user)):
        try:
            return services.redemptions.request_redemption(user.id, payload.get("method"), payload.get("points"))
        except ServiceError as e:
            raise _to_http(e)

    @app.get("/redemptions", response_model=list[RedemptionRequest])
    def list_redemptions(user: User = Depends(current_user)):
        return services.redemptions.list_for_user(user.id)

    @app.get("/bank", response_model=BankDetailsView)
    def get_bank_details(user: User = Depends(current_user)):
        return services.accounts.get_bank_details(user.id)

    @app.put("/bank", response_model=BankDetailsView)
    def save_bank_details(payload: dict = Body(...), user: User = Depends(current_user)):
        try:
            return services.accounts.save_bank_details(
                user.id,
                account_holder=payload.get("accountHolder"),
                account_number=payload.get("accountNumber"),
                ifsc=payload.get("ifsc"),
                upi_id=payload.get("upiId"),
            )
        except ServiceError as e:
            raise _to_http(e)

    @app.put("/user/expertise", response_model=User)
    def update_expertise(payload: dict = Body(...), user: User = Depends(current_user)):
        try:
            return services.accounts.update_profile(user.id, payload.get("expertise"), payload.get("bio"))
        except ServiceError as e:
            raise _to_http(e)

    return app


logging.basicConfig(level=settings.LOG_LEVEL)

app = create_app(build_services(settings))

handler = Mangum(app)
