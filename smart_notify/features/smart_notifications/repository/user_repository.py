"""
User lookups: display names and push tokens.
"""

from smart_notify.db.helpers import execute_query, fetch_all, fetch_one
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class UserRepository:
    @classmethod
    async def get_display_names(cls, user_ids: list[str]) -> dict[str, str]:
        if not user_ids:
            return {}

        query = """
            SELECT id, display_name
            FROM users
            WHERE id = ANY(%s)
        """
        rows = await fetch_all(query, (list(user_ids),))
        return {str(row["id"]): row["display_name"] for row in rows if row.get("display_name")}

    @classmethod
    async def get_push_token(cls, user_id: str) -> str | None:
        row = await fetch_one("SELECT push_token FROM users WHERE id = %s", (user_id,))
        return row.get("push_token") if row else None

    @classmethod
    async def delete_push_token(cls, user_id: str, token: str) -> bool:
        """Clear the stored token only if it is still the one that failed."""
        query = """
            UPDATE users
            SET push_token = NULL
            WHERE id = %s AND push_token = %s
        """
        deleted = await execute_query(query, (user_id, token)) > 0
        logger.info("Push token cleanup", user_id=user_id, deleted=deleted)
        return deleted
