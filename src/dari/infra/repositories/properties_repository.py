"""Read-only access to the property catalog owned by the listings service."""

from psycopg2.extensions import cursor as PgCursor

from dari.domain.models import PropertyTerms
from dari.infra.db import fetchone


def get_property_terms(cur: PgCursor, property_id: str) -> PropertyTerms | None:
    """Load owner, policy and stay rules for a property (None if unknown)."""
    row = fetchone(
        cur,
        """
        SELECT id, host_id, cancellation_policy, minimum_stay, currency
        FROM properties
        WHERE id = %s
        """,
        (property_id,),
    )
    if row is None:
        return None
    return PropertyTerms(
        id=str(row[0]),
        host_id=str(row[1]),
        cancellation_policy=row[2],
        minimum_stay=row[3] or 1,
        currency=row[4],
    )
