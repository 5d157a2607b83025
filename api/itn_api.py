"""
Payment Notification API.

Receives PayFast ITNs and the related browser and admin callbacks.
"""

import hmac
import logging
from typing import List, Optional

from aiohttp import web

from config import AdminConfig, ITNConfig
from models.notification import Notification, ValidationResult
from services.attestation import RemoteAttestor
from services.checks import VerificationCheck, build_checks, run_checks
from services.exceptions import (
    AttestationFailure,
    AuthenticationFailure,
    ITNRejected,
    StorageFailure,
)
from services.reconciliation import (
    RETURN_CANCEL,
    RETURN_SUCCESS,
    ReconciliationResult,
    ReconciliationStore,
)
from services.signature import SignatureVerifier

logger = logging.getLogger(__name__)


class ITNController:
    """
    HTTP handlers for the payment flow.

    Endpoints:
    - POST /api/payfast-itn - PayFast ITN (other methods answer 200 OK)
    - GET /api/payment-return - Payer's browser coming back from PayFast
    - POST /api/update-paid - Manual mark-paid by an admin
    - GET /api/health - Health check

    An ITN moves received -> signature-checked -> attested -> reconciled.
    Rejections answer 400 and are final; storage and unexpected errors
    answer 500 so PayFast redelivers.
    """

    def __init__(
        self,
        itn_config: ITNConfig,
        store: ReconciliationStore,
        attestor: RemoteAttestor,
        admin_config: Optional[AdminConfig] = None,
        checks: Optional[List[VerificationCheck]] = None,
        return_redirect_url: str = '/',
        service_name: str = 'RegistrationPaymentNotifications'
    ):
        """
        Initialize the controller.

        Args:
            itn_config: ITN settings (passphrase, strict checks)
            store: Reconciliation store for application records
            attestor: PayFast validation client
            admin_config: Admin secret for the mark-paid action
            checks: Verification checks; built from itn_config if omitted
            return_redirect_url: Where the payer is sent after a return
            service_name: Reported by the health check
        """
        self.verifier = SignatureVerifier(itn_config.passphrase)
        self.store = store
        self.attestor = attestor
        self.admin_config = admin_config
        self.checks = checks if checks is not None else build_checks(itn_config)
        self.return_redirect_url = return_redirect_url
        self.service_name = service_name

    def setup_routes(self, app: web.Application) -> None:
        """
        Set up API routes.

        Args:
            app: aiohttp web application
        """
        app.router.add_route('*', '/api/payfast-itn', self.handle_itn)
        app.router.add_get('/api/payment-return', self.payment_return)
        app.router.add_post('/api/update-paid', self.update_paid)
        app.router.add_get('/api/health', self.health_check)

    async def handle_itn(self, request: web.Request) -> web.Response:
        """Receive one PayFast ITN."""
        # Health probes and misrouted calls must not look like failures
        if request.method != 'POST':
            return web.Response(text='OK')

        try:
            raw_body = await request.read()
            notification = Notification.from_body(
                raw_body,
                request.headers.get('Content-Type')
            )
            logger.info(
                f"ITN received: {notification.summary()} "
                f"fields={sorted(notification.fields)}"
            )

            await self.process(notification)

        except ITNRejected as e:
            logger.warning(f"ITN rejected: {e.detail}")
            return web.Response(text=e.reason, status=400)
        except StorageFailure as e:
            logger.error(f"ITN storage error: {e}")
            return web.Response(text='Server error', status=500)
        except Exception as e:
            logger.error(f"ITN error: {e}", exc_info=True)
            return web.Response(text='Server error', status=500)

        return web.Response(text='OK')

    async def process(self, notification: Notification) -> ReconciliationResult:
        """
        Run the verification pipeline and apply the notification.

        Returns:
            ReconciliationResult from the store

        Raises:
            ITNRejected: On signature, check, attestation or reference failure
            StorageFailure: If the database write fails
        """
        if self.verifier.verify(notification) is not ValidationResult.CONFIRMED:
            raise AuthenticationFailure(f"Signature check failed: {notification.summary()}")

        run_checks(self.checks, notification)

        if await self.attestor.validate(notification) is not ValidationResult.CONFIRMED:
            raise AttestationFailure(f"PayFast did not confirm: {notification.summary()}")

        result = await self.store.apply(notification)

        if not result.updated:
            logger.warning(
                f"ITN for unknown application {result.application_id} "
                f"(status={result.status}), nothing updated"
            )
        elif result.marked_paid:
            logger.info(f"Application {result.application_id} marked paid ({notification.pf_payment_id})")
        else:
            logger.info(f"Application {result.application_id} ITN status={result.status} recorded")

        return result

    async def payment_return(self, request: web.Request) -> web.Response:
        """
        Payer's browser returning from PayFast.

        Query: pay=success|cancel, pid=<application id>
        """
        pay = request.query.get('pay', '').lower()
        pid = request.query.get('pid', '').strip()

        if not pid or pay not in (RETURN_SUCCESS, RETURN_CANCEL):
            return web.Response(text='Missing or invalid pay/pid', status=400)

        try:
            await self.store.record_return(pid, pay)
        except StorageFailure:
            return web.Response(text='Update failed', status=500)

        raise web.HTTPFound(self.return_redirect_url)

    async def update_paid(self, request: web.Request) -> web.Response:
        """
        Mark an application paid by hand.

        Request body:
        {
            "id": "<application id>",
            "admin_password": "..."
        }
        """
        try:
            data = await request.json()
        except Exception:
            return web.json_response({"error": "Invalid JSON body"}, status=400)

        if not isinstance(data, dict):
            return web.json_response({"error": "Invalid JSON body"}, status=400)

        application_id = data.get('id')
        password = data.get('admin_password')

        if not application_id or not password:
            return web.json_response(
                {"error": "Missing id or admin_password"},
                status=400
            )

        expected = self.admin_config.password if self.admin_config else ''
        if not expected:
            logger.error("Mark-paid requested but ADMIN_PASSWORD is not configured")
            return web.json_response(
                {"error": "Server misconfigured (missing admin password)"},
                status=500
            )

        if not hmac.compare_digest(str(password).encode(), expected.encode()):
            logger.warning(f"Mark-paid for {application_id} with invalid admin password")
            return web.json_response({"error": "Invalid admin password"}, status=401)

        try:
            record = await self.store.mark_paid(str(application_id))
        except StorageFailure:
            return web.json_response({"error": "Failed to update"}, status=500)

        if record is None:
            return web.json_response({"error": "Application not found"}, status=404)

        return web.json_response({"ok": True, "data": record.to_dict()})

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "healthy",
            "service": self.service_name
        })


def create_app(controller: ITNController) -> web.Application:
    """
    Create and configure the aiohttp web application.

    Args:
        controller: Handlers for the payment endpoints

    Returns:
        Configured aiohttp Application
    """
    app = web.Application()

    controller.setup_routes(app)

    # Add CORS middleware for the admin panel
    @web.middleware
    async def cors_middleware(request, handler):
        if request.method == "OPTIONS" and request.path != '/api/payfast-itn':
            response = web.Response()
        else:
            response = await handler(request)

        response.headers['Access-Control-Allow-Origin'] = '*'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
        response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization'
        return response

    # Error handling middleware
    @web.middleware
    async def error_middleware(request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as e:
            logger.error(f"Unhandled error: {e}", exc_info=True)
            return web.json_response(
                {"error": "Internal server error"},
                status=500
            )

    app.middlewares.append(cors_middleware)
    app.middlewares.append(error_middleware)

    return app
