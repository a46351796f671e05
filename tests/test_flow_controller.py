import unittest
from unittest.mock import AsyncMock


from auth.config import AuthSettings
from auth.errors import ErrorKind, SuggestedAction, classify
from auth.exceptions import ProviderError
from auth.flow import FlowController, FlowOutcome, FlowState, FlowStep
from auth.interfaces.verification_provider import StartedVerification, VerificationMode, VerifiedIdentity
from auth.session import SessionRecord


def make_settings(**overrides) -> AuthSettings:
    values = {
        "APP_URL": "http://localhost:3000",
        "AUTH_PROVIDER": "memory",
        "SESSION_SECRET_KEY": "k" * 32,
        "ENVIRONMENT": "dev",
        "_env_file": None,
    }
    values.update(overrides)
    return AuthSettings(**values)


def awaiting(request_id: str = "r1") -> FlowState:
    return FlowState(step=FlowStep.AWAITING_VERIFICATION, request_id=request_id, email="a@b.com")


class TestFlowState(unittest.TestCase):
    def test_request_id_only_while_awaiting_verification(self):
        with self.assertRaises(ValueError):
            FlowState(step=FlowStep.AWAITING_EMAIL, request_id="r1")
        with self.assertRaises(ValueError):
            FlowState(step=FlowStep.AWAITING_VERIFICATION)

    def test_from_request_id(self):
        self.assertEqual(FlowState.from_request_id("r1").step, FlowStep.AWAITING_VERIFICATION)
        self.assertEqual(FlowState.from_request_id(None).step, FlowStep.AWAITING_EMAIL)
        self.assertEqual(FlowState.from_request_id("").step, FlowStep.AWAITING_EMAIL)

    def test_state_rebuilt_from_cookie_has_no_contact_address(self):
        state = FlowState.from_request_id("r1")
        self.assertEqual(state.request_id, "r1")
        self.assertIsNone(state.email)
        self.assertEqual(FlowState.from_request_id("r1", email="a@b.com").email, "a@b.com")

    def test_outcome_never_holds_session_and_error(self):
        with self.assertRaises(ValueError):
            FlowOutcome(
                state=FlowState(),
                session=SessionRecord(subject="a@b.com", expires_in=60),
                error=classify(ErrorKind.TRANSIENT, "x", 500),
            )


class TestFlowController(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.settings = make_settings(CODE_EXPIRES_IN=100, SESSION_EXPIRE_SECONDS=3600)
        self.provider = AsyncMock()
        self.controller = FlowController(self.provider, self.settings)

    async def test_end_to_end_code_flow(self):
        self.provider.start_verification.return_value = StartedVerification("r1", VerificationMode.OTP)
        self.provider.verify_code.return_value = VerifiedIdentity(email="a@b.com")

        started = await self.controller.submit_email(FlowState(), "a@b.com")
        self.assertTrue(started.ok)
        self.assertEqual(started.state.step, FlowStep.AWAITING_VERIFICATION)
        self.assertEqual(started.state.request_id, "r1")
        self.assertEqual(started.state.mode, VerificationMode.OTP)
        self.assertIsNone(started.session)
        self.provider.start_verification.assert_awaited_once_with(
            "a@b.com",
            expires_in=100,
            magic_link_uri="http://localhost:3000/api/auth/verify-magic-link",
        )

        done = await self.controller.submit_code(started.state, "r1", "123456")
        self.assertEqual(done.state.step, FlowStep.AUTHENTICATED)
        self.assertIsNone(done.state.request_id)
        self.assertIsNone(done.error)
        self.assertEqual(done.session.subject, "a@b.com")
        self.assertGreater(done.session.expires_in, 0)
        self.provider.verify_code.assert_awaited_once_with("r1", "123456")

    async def test_valid_codes_authenticate(self):
        self.provider.verify_code.return_value = VerifiedIdentity(email="a@b.com")
        for code in ("000000", "123456", "999999"):
            with self.subTest(code=code):
                outcome = await self.controller.submit_code(awaiting(), "r1", code)
                self.assertEqual(outcome.state.step, FlowStep.AUTHENTICATED)
                self.assertEqual(outcome.session.expires_in, 3600)

    async def test_malformed_codes_rejected_locally(self):
        for code in ("", "1", "12345", "1234567", "abcdef", "12 456", "١٢٣٤٥٦"):
            with self.subTest(code=code):
                outcome = await self.controller.submit_code(awaiting(), "r1", code)
                self.assertEqual(outcome.error.kind, ErrorKind.INVALID_INPUT)
                self.assertEqual(outcome.error.status_code, 400)
                self.assertEqual(outcome.state, awaiting())
        self.provider.verify_code.assert_not_awaited()

    async def test_mismatched_request_id_is_invalid_input(self):
        outcome = await self.controller.submit_code(awaiting("r1"), "r2", "123456")
        self.assertEqual(outcome.error.kind, ErrorKind.INVALID_INPUT)
        self.provider.verify_code.assert_not_awaited()

    async def test_code_without_started_flow_is_invalid_input(self):
        outcome = await self.controller.submit_code(FlowState(), "r1", "123456")
        self.assertEqual(outcome.error.kind, ErrorKind.INVALID_INPUT)
        self.assertEqual(outcome.state.step, FlowStep.AWAITING_EMAIL)
        self.provider.verify_code.assert_not_awaited()

    async def test_code_expired_restarts_flow(self):
        self.provider.verify_code.side_effect = ProviderError("CODE_EXPIRED", "expired")
        outcome = await self.controller.submit_code(awaiting(), "r1", "123456")
        self.assertEqual(outcome.state.step, FlowStep.AWAITING_EMAIL)
        self.assertIsNone(outcome.state.request_id)
        self.assertEqual(outcome.state.email, "a@b.com")
        self.assertEqual(outcome.error.kind, ErrorKind.EXPIRED)
        self.assertIsNone(outcome.session)

    async def test_too_many_attempts_restarts_flow(self):
        self.provider.verify_code.side_effect = ProviderError("TOO_MANY_ATTEMPTS", "")
        outcome = await self.controller.submit_code(awaiting(), "r1", "123456")
        self.assertEqual(outcome.state.step, FlowStep.AWAITING_EMAIL)
        self.assertEqual(outcome.error.status_code, 429)

    async def test_invalid_code_stays_awaiting_verification(self):
        self.provider.verify_code.side_effect = ProviderError("INVALID_CODE", "wrong")
        outcome = await self.controller.submit_code(awaiting(), "r1", "123456")
        self.assertEqual(outcome.state, awaiting())
        self.assertEqual(outcome.error.kind, ErrorKind.INVALID_CODE)
        self.assertEqual(outcome.error.action, SuggestedAction.RETRY_SAME_STEP)

    async def test_missing_subject_is_not_replaced_with_placeholder(self):
        self.provider.verify_code.return_value = VerifiedIdentity(email=None)
        outcome = await self.controller.submit_code(awaiting(), "r1", "123456")
        self.assertIsNone(outcome.session)
        self.assertEqual(outcome.error.kind, ErrorKind.TRANSIENT)
        self.assertEqual(outcome.error.status_code, 500)

    async def test_link_without_request_id_is_invalid_link(self):
        outcome = await self.controller.submit_link_token(FlowState(), "tok")
        self.assertEqual(outcome.error.kind, ErrorKind.INVALID_LINK)
        self.provider.verify_link.assert_not_awaited()

    async def test_link_without_token_is_invalid_link(self):
        outcome = await self.controller.submit_link_token(awaiting(), "")
        self.assertEqual(outcome.error.kind, ErrorKind.INVALID_LINK)
        self.provider.verify_link.assert_not_awaited()

    async def test_link_success_authenticates(self):
        self.provider.verify_link.return_value = VerifiedIdentity(email="a@b.com")
        outcome = await self.controller.submit_link_token(awaiting(), "tok")
        self.assertEqual(outcome.state.step, FlowStep.AUTHENTICATED)
        self.assertEqual(outcome.session.subject, "a@b.com")
        self.provider.verify_link.assert_awaited_once_with("r1", "tok")

    async def test_invalid_link_token_keeps_code_path_open(self):
        self.provider.verify_link.side_effect = ProviderError("INVALID_LINK_TOKEN", "")
        outcome = await self.controller.submit_link_token(awaiting(), "tok")
        self.assertEqual(outcome.state, awaiting())
        self.assertEqual(outcome.error.kind, ErrorKind.INVALID_LINK)

    async def test_expired_auth_request_on_link_restarts(self):
        self.provider.verify_link.side_effect = ProviderError("AUTH_REQUEST_EXPIRED", "")
        outcome = await self.controller.submit_link_token(awaiting(), "tok")
        self.assertEqual(outcome.state.step, FlowStep.AWAITING_EMAIL)

    async def test_submit_email_rejects_blank_and_implausible_addresses(self):
        for address in (None, "", "   ", "not-an-email", "a@", "@b.com"):
            with self.subTest(address=address):
                outcome = await self.controller.submit_email(FlowState(), address)
                self.assertEqual(outcome.error.kind, ErrorKind.INVALID_INPUT)
                self.assertEqual(outcome.state.step, FlowStep.AWAITING_EMAIL)
        self.provider.start_verification.assert_not_awaited()

    async def test_submit_email_failure_stays_awaiting_email(self):
        self.provider.start_verification.side_effect = ProviderError("RATE_LIMIT_EXCEEDED", "")
        outcome = await self.controller.submit_email(FlowState(), "a@b.com")
        self.assertEqual(outcome.state.step, FlowStep.AWAITING_EMAIL)
        self.assertEqual(outcome.state.email, "a@b.com")
        self.assertEqual(outcome.error.status_code, 429)

    async def test_unknown_provider_code_is_transient(self):
        self.provider.start_verification.side_effect = ProviderError("WEIRD_CODE", "Something odd")
        outcome = await self.controller.submit_email(FlowState(), "a@b.com")
        self.assertEqual(outcome.error.kind, ErrorKind.TRANSIENT)
        self.assertEqual(outcome.error.status_code, 500)
        self.assertEqual(outcome.error.message, "Something odd")

    async def test_resend_keeps_step_on_success_and_failure(self):
        outcome = await self.controller.resend(awaiting(), "r1")
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.state, awaiting())

        self.provider.resend.side_effect = ProviderError("RATE_LIMIT_EXCEEDED", "")
        outcome = await self.controller.resend(awaiting(), "r1")
        self.assertEqual(outcome.state, awaiting())
        self.assertEqual(outcome.error.kind, ErrorKind.RATE_LIMITED)

    async def test_resend_requires_awaiting_verification(self):
        outcome = await self.controller.resend(FlowState(), "r1")
        self.assertEqual(outcome.error.kind, ErrorKind.INVALID_INPUT)
        outcome = await self.controller.resend(awaiting(), None)
        self.assertEqual(outcome.error.kind, ErrorKind.INVALID_INPUT)
        self.provider.resend.assert_not_awaited()

    async def test_exchange_code_uses_provider_expiry(self):
        self.provider.authenticate_with_code.return_value = VerifiedIdentity(email="a@b.com", expires_in=7200)
        outcome = await self.controller.exchange_code("auth-code")
        self.assertEqual(outcome.state.step, FlowStep.AUTHENTICATED)
        self.assertEqual(outcome.session.expires_in, 7200)
        self.provider.authenticate_with_code.assert_awaited_once_with(
            "auth-code", "http://localhost:3000/api/auth/callback"
        )

    async def test_exchange_code_reports_redirect_error(self):
        outcome = await self.controller.exchange_code(None, error="access_denied", error_description="User said no")
        self.assertEqual(outcome.state.step, FlowStep.FAILED)
        self.assertEqual(outcome.error.message, "User said no")

        outcome = await self.controller.exchange_code(None)
        self.assertEqual(outcome.error.message, "No authorization code received")
        self.provider.authenticate_with_code.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()
