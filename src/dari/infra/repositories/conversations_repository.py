"""Conversations repository - host/guest threads owned by the messaging service.

This service only makes sure a thread exists for an accepted booking; the
messaging service owns everything inside it.
"""

from psycopg2.extensions import cursor as PgCursor

from dari.infra.db import fetchone


def upsert_booking_conversation(
    cur: PgCursor,
    *,
    property_id: str,
    host_id: str,
    guest_id: str,
    booking_id: str,
) -> str:
    """Open the (property, host, guest) conversation or point it at this booking.

    Returns:
        The conversation id.
    """
    row = fetchone(
        cur,
        """
        INSERT INTO conversations (property_id, host_id, guest_id, booking_id)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (property_id, host_id, guest_id)
        DO UPDATE SET booking_id = EXCLUDED.booking_id, updated_at = now()
        RETURNING id
        """,
        (property_id, host_id, guest_id, booking_id),
    )
    return str(row[0])
