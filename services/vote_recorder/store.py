"""Firestore-backed vote store."""
import logging
from typing import Optional

from google.cloud.firestore import SERVER_TIMESTAMP, AsyncClient, async_transactional
from google.oauth2 import service_account

from vote_recorder.config import Settings
from vote_recorder.errors import StoreUnavailable
from vote_recorder.models import VoteOutcome, receipt_id

logger = logging.getLogger(__name__)

REQUIRED_CREDENTIALS = ("FIREBASE_PROJECT_ID", "FIREBASE_PRIVATE_KEY", "FIREBASE_CLIENT_EMAIL")


def _vote_count(snapshot) -> int:
    """
    Read voteCount from a tally snapshot, treating absence as zero.

    Raises:
        ValueError: If the stored count is not a whole non-negative number
    """
    if not snapshot.exists:
        return 0
    data = snapshot.to_dict() or {}
    value = data.get("voteCount") or 0
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0 or value != int(value):
        raise ValueError(f"Tally holds an invalid voteCount: {value!r}")
    return int(value)


async def record_vote_in_transaction(transaction, tally_ref, receipt_ref, destination_id: str) -> VoteOutcome:
    """
    Check for a receipt and count the vote inside one transaction.

    All reads happen before any write. When the receipt exists nothing is
    written; otherwise the tally is merge-upserted and the receipt created in
    the same commit.

    Args:
        transaction: Active Firestore transaction
        tally_ref: Reference to the destination's tally document
        receipt_ref: Reference to the voter's receipt document
        destination_id: Destination identifier

    Returns:
        VoteOutcome describing the resulting state
    """
    receipt = await receipt_ref.get(transaction=transaction)
    tally = await tally_ref.get(transaction=transaction)

    if receipt.exists:
        return VoteOutcome(
            destination_id=destination_id,
            count=_vote_count(tally),
            already_voted=True
        )

    new_count = _vote_count(tally) + 1
    transaction.set(tally_ref, {"voteCount": new_count}, merge=True)
    transaction.create(receipt_ref, {"votedAt": SERVER_TIMESTAMP})

    return VoteOutcome(destination_id=destination_id, count=new_count)


class FirestoreVoteStore:
    """Vote tallies and receipts kept in Firestore."""

    def __init__(
        self,
        client: AsyncClient,
        tally_collection: str = "destinationVotes",
        receipt_collection: str = "userVotes",
        max_attempts: int = 5
    ):
        self.client = client
        self.tally_collection = tally_collection
        self.receipt_collection = receipt_collection
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[AsyncClient] = None) -> "FirestoreVoteStore":
        """
        Build a store from service account settings.

        Args:
            settings: Application settings holding the Firebase credentials
            client: Pre-built client, used instead of the credentials when given

        Raises:
            StoreUnavailable: If credentials are missing or unusable
        """
        if client is None:
            missing = [name for name in REQUIRED_CREDENTIALS if not getattr(settings, name)]
            if missing:
                logger.error(f"Missing Firebase credentials: {', '.join(missing)}")
                raise StoreUnavailable()

            try:
                credentials = service_account.Credentials.from_service_account_info(
                    settings.service_account_info
                )
                client = AsyncClient(
                    project=settings.FIREBASE_PROJECT_ID,
                    credentials=credentials
                )
            except Exception as e:
                logger.error(f"Firebase admin initialization error: {e}")
                raise StoreUnavailable() from e

        logger.info(f"Firestore client initialized for project {client.project}")

        return cls(
            client,
            tally_collection=settings.TALLY_COLLECTION,
            receipt_collection=settings.RECEIPT_COLLECTION,
            max_attempts=settings.MAX_TRANSACTION_ATTEMPTS
        )

    def tally_ref(self, destination_id: str):
        return self.client.collection(self.tally_collection).document(destination_id)

    def receipt_ref(self, voter_id: str, destination_id: str):
        return self.client.collection(self.receipt_collection).document(
            receipt_id(voter_id, destination_id)
        )

    async def record_vote(self, destination_id: str, voter_id: str) -> VoteOutcome:
        """
        Record a vote exactly once per voter and destination.

        Contended transactions are retried by the Firestore client up to
        ``max_attempts`` times before the error propagates.

        Args:
            destination_id: Destination identifier
            voter_id: Voter identifier

        Returns:
            VoteOutcome with the new count, or the current count for a duplicate
        """
        transaction = self.client.transaction(max_attempts=self.max_attempts)
        try:
            outcome = await async_transactional(record_vote_in_transaction)(
                transaction,
                self.tally_ref(destination_id),
                self.receipt_ref(voter_id, destination_id),
                destination_id
            )
        except Exception as e:
            logger.error(f"Vote transaction failed for destination {destination_id}: {e}")
            raise

        if outcome.already_voted:
            logger.info(f"Voter {voter_id} already voted for {destination_id}")
        else:
            logger.info(f"Vote recorded: destination={destination_id}, count={outcome.count}")

        return outcome

    async def get_tally(self, destination_id: str) -> int:
        """
        Get the current tally for a destination.

        Returns:
            Vote count, 0 if the destination has no votes yet
        """
        try:
            snapshot = await self.tally_ref(destination_id).get()
            return _vote_count(snapshot)
        except Exception as e:
            logger.error(f"Error getting tally for destination {destination_id}: {e}")
            raise

    async def check_health(self) -> bool:
        """
        Check Firestore connectivity with a single document read.

        Returns:
            bool: True if healthy, False otherwise
        """
        try:
            await self.client.collection(self.tally_collection).document("_health").get()
            return True
        except Exception as e:
            logger.error(f"Firestore health check failed: {e}")
            return False
