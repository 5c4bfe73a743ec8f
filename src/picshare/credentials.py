"""Password credentials and account registration for PicShare.

Passwords are hashed with bcrypt (salted, adaptive cost) and compared with
``bcrypt.checkpw``, which is constant time. Login failures collapse into a
single ``InvalidCredentials`` error; the precise cause is only logged.
"""

import asyncio
import logging

import bcrypt

from picshare.errors import DuplicateEmail, InternalError, InvalidCredentials, ValidationError
from picshare.metadata.models import Account, Credential
from picshare.metadata.store import MetadataStore

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 10


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return the bcrypt digest of ``password`` as text."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("ascii")


def check_password(password: str, hashed: str) -> bool:
    """Compare ``password`` against a bcrypt digest in constant time."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("ascii"))
    except ValueError:
        # Malformed digest or an over-long password
        return False


class CredentialStore:
    """Creates and verifies account credentials.

    Owns no state of its own; accounts and digests live in the metadata
    store.
    """

    def __init__(self, metadata: MetadataStore, rounds: int = DEFAULT_ROUNDS) -> None:
        self.metadata = metadata
        self.rounds = rounds

    async def register_credential(self, owner_id: int, password: str) -> None:
        """Hash ``password`` and store the digest for ``owner_id``.

        Raises:
            InternalError: If hashing or storing the digest fails.
        """
        try:
            hashed = await asyncio.to_thread(hash_password, password, self.rounds)
        except Exception as exc:
            logger.error("Failed to hash password for account %d", owner_id, exc_info=True)
            raise InternalError("Unable to register account, try again later") from exc

        try:
            await self.metadata.insert_credential(Credential(owner_id=owner_id, hashed_pass=hashed))
        except Exception as exc:
            logger.error("Failed to store credential for account %d", owner_id, exc_info=True)
            raise InternalError("Unable to register account, try again later") from exc

    async def verify_credential(self, email: str, password: str) -> Account:
        """Check an email/password pair.

        Args:
            email: Login email.
            password: Plaintext password.

        Returns:
            The matching Account.

        Raises:
            InvalidCredentials: For a missing account, a missing credential,
                a wrong password, or a lookup failure alike.
        """
        try:
            accounts = await self.metadata.find_accounts_by_email(email)
            if len(accounts) != 1:
                logger.warning("Login rejected: no such account (%d matches)", len(accounts))
                raise InvalidCredentials()
            account = accounts[0]

            credentials = await self.metadata.find_credentials(account.id)
            if len(credentials) != 1:
                logger.warning("Login rejected: no credential for account %d", account.id)
                raise InvalidCredentials()
        except InvalidCredentials:
            raise
        except Exception as exc:
            logger.error("Login rejected: credential lookup failed", exc_info=True)
            raise InvalidCredentials() from exc

        matches = await asyncio.to_thread(check_password, password, credentials[0].hashed_pass)
        if not matches:
            logger.warning("Login rejected: password mismatch for account %d", account.id)
            raise InvalidCredentials()

        return account

    async def register_account(
        self, firstname: str, lastname: str, email: str, password: str
    ) -> Account:
        """Create an account and its credential.

        If the credential cannot be created the new account is deleted
        again, so no account ever exists without a usable credential.

        Raises:
            ValidationError: If a field is empty.
            DuplicateEmail: If the email is already registered.
            InternalError: On storage or hashing failure.
        """
        if not (firstname and lastname and email and password):
            raise ValidationError("Required fields are empty, correct request and try again")

        try:
            existing = await self.metadata.find_accounts_by_email(email)
        except Exception as exc:
            logger.error("Unable to check email uniqueness", exc_info=True)
            raise InternalError("Unable to register account, try again later") from exc
        if existing:
            raise DuplicateEmail()

        account = Account(firstname=firstname, lastname=lastname, email=email)
        try:
            account.id = await self.metadata.insert_account(account)
        except Exception as exc:
            # A concurrent registration may have claimed the email first
            if await self._email_taken(email):
                raise DuplicateEmail() from exc
            logger.error("Unable to insert account", exc_info=True)
            raise InternalError("Unable to register account, try again later") from exc

        try:
            await self.register_credential(account.id, password)
        except InternalError:
            await self._rollback_account(account.id)
            raise

        logger.info("Registered account %d", account.id)
        return account

    async def _email_taken(self, email: str) -> bool:
        try:
            return bool(await self.metadata.find_accounts_by_email(email))
        except Exception:
            logger.warning("Email recheck failed", exc_info=True)
            return False

    async def _rollback_account(self, account_id: int) -> None:
        try:
            await self.metadata.delete_account(account_id)
            logger.info("Rolled back account %d after credential failure", account_id)
        except Exception:
            logger.error(
                "Failed to roll back account %d; it has no credential", account_id,
                exc_info=True,
            )
