from typing import Any

from feedstream.main.models import GeneralError

DESCRIPTIONS = {
    400: "Missing or contradictory feed identifiers or paging parameters",
    404: "Unknown feed or refresh batch",
    502: "The feed host could not be reached or answered with an error",
    503: "Feed store, cache or metrics service is unavailable. Retry after the `Retry-After` delay",
}


def get_responses(response_codes: list[int]) -> dict[int | str, dict[str, Any]]:
    """OpenAPI ``responses`` entries for the error codes a route can return."""
    return {
        code: {"model": GeneralError, "description": DESCRIPTIONS.get(code, "Error")}
        for code in response_codes
    }
