"""PostgreSQL source for operator feature toggles."""
from __future__ import annotations

from ..persistence import PostgresRepository
from .catalog import FEATURE_KEY_PREFIX
from .models import Domain, DomainConfig, FeatureOverride

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _setting_enabled(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


class PostgresFeatureConfigRepository(PostgresRepository):
    """Reads ``site_settings`` feature rows and ``domain_configs``."""

    def list_feature_overrides(self) -> list[FeatureOverride]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT key, value, updated_at
                FROM site_settings
                WHERE key LIKE %s
                ORDER BY key
                """,
                (f"{FEATURE_KEY_PREFIX}%",),
            )
            rows = cursor.fetchall() or []
            return [
                FeatureOverride(
                    key=row["key"],
                    enabled=_setting_enabled(row["value"]),
                    updated_at=row.get("updated_at"),
                )
                for row in rows
            ]

    def list_domain_configs(self) -> list[DomainConfig]:
        known = {domain.value for domain in Domain}
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT domain, is_enabled, coming_soon_message, updated_at
                FROM domain_configs
                ORDER BY domain
                """
            )
            rows = cursor.fetchall() or []
            return [
                DomainConfig(
                    domain=Domain(row["domain"]),
                    enabled=bool(row["is_enabled"]),
                    coming_soon_message=row.get("coming_soon_message"),
                    updated_at=row.get("updated_at"),
                )
                for row in rows
                if row["domain"] in known
            ]


__all__ = ["PostgresFeatureConfigRepository"]
