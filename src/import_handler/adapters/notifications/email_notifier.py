"""Import outcome email adapter."""

import time
from typing import Callable, Optional

import jwt

from import_handler.core import ConfigurationError, NotificationService, TaskQueue

FAILED_SUBJECT = "Your {product} import failed."
FAILED_BODY = (
    "There was an error importing your file. Please ensure you uploaded the correct "
    "file type, if you need help, please email {feedback}"
)
COMPLETED_SUBJECT = "Your {product} import has completed processing"
COMPLETED_BODY = (
    "{imported} URLs have been processed and should be available in your library. "
    "{failed} URLs failed to be parsed."
)


class EmailNotifier(NotificationService):
    """Enqueue email tasks to the internal user-email endpoint."""

    def __init__(
        self,
        task_queue: TaskQueue,
        email_url: str,
        jwt_secret: Optional[str],
        token_ttl_seconds: int = 60 * 60 * 24,
        product_name: str = "Omnivore",
        feedback_address: str = "feedback@omnivore.app",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize email notifier.

        Args:
            task_queue: Queue the email task is created on
            email_url: Internal endpoint that sends the email
            jwt_secret: Secret the user auth token is signed with. Must be
                set by the time a notification is sent.
            token_ttl_seconds: Lifetime of the auth token
            clock: Time source (seconds since epoch)
        """
        self.task_queue = task_queue
        self.email_url = email_url
        self.jwt_secret = jwt_secret
        self.token_ttl_seconds = token_ttl_seconds
        self.product_name = product_name
        self.feedback_address = feedback_address
        self.clock = clock

    def sign_token(self, user_id: str) -> str:
        """Sign a short-lived auth token for the user.

        Raises:
            ConfigurationError: if no signing secret is configured.
        """
        if not self.jwt_secret:
            raise ConfigurationError("Environment not setup correctly: JWT_SECRET is missing")

        exp = int(self.clock()) + self.token_ttl_seconds
        return jwt.encode({"uid": user_id, "exp": exp}, self.jwt_secret, algorithm="HS256")

    async def send_email(self, user_id: str, subject: str, body: str) -> Optional[str]:
        token = self.sign_token(user_id)
        headers = {"Cookie": f"auth={token}"}
        task_id = await self.task_queue.enqueue(
            self.email_url, {"subject": subject, "body": body}, headers
        )
        print(f"📧 Email '{subject}' queued for user {user_id}")
        return task_id

    async def send_import_failed(self, user_id: str) -> Optional[str]:
        return await self.send_email(
            user_id,
            FAILED_SUBJECT.format(product=self.product_name),
            FAILED_BODY.format(feedback=self.feedback_address),
        )

    async def send_import_completed(
        self, user_id: str, imported: int, failed: int
    ) -> Optional[str]:
        return await self.send_email(
            user_id,
            COMPLETED_SUBJECT.format(product=self.product_name),
            COMPLETED_BODY.format(imported=imported, failed=failed),
        )
