"""Default price list for billable endpoints."""

from __future__ import annotations

from creditledger.credits.types import ApiCreditConfigInput
from creditledger.models import HttpMethod

DEFAULT_API_CREDIT_CONFIGS: tuple[ApiCreditConfigInput, ...] = (
    ApiCreditConfigInput(
        "/api/v1/generate-character", HttpMethod.POST, 10, "Generate character"
    ),
    ApiCreditConfigInput("/api/v1/generate-image", HttpMethod.POST, 15, "Generate image"),
    ApiCreditConfigInput("/api/v1/characters", HttpMethod.POST, 5, "Create character"),
    ApiCreditConfigInput(
        "/api/v1/characters/:id/enhance", HttpMethod.POST, 8, "Enhance character"
    ),
    ApiCreditConfigInput("/api/v1/collections", HttpMethod.POST, 3, "Create collection"),
)
