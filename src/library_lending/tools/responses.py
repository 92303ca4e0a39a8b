"""
Response helpers shared by the lending tools.

Tools answer with MCP content blocks plus structured data. Failures set
``isError`` and carry the outcome's error kind so clients can tell a
retryable store failure from a final rejection.
"""

from typing import Any

from ..lending.outcomes import LendingErrorKind, LendingOutcome


def text_response(message: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    response: dict[str, Any] = {"content": [{"type": "text", "text": message}]}
    if data is not None:
        response["data"] = data
    return response


def error_response(message: str, kind: str, retryable: bool = False) -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": message}],
        "error": {"kind": kind, "retryable": retryable},
    }


def permission_denied(user_id: str) -> dict[str, Any]:
    return error_response(f"User {user_id} is not authorized as an admin", "forbidden")


def invalid_input(message: str) -> dict[str, Any]:
    return error_response(message, LendingErrorKind.INVALID_ARGUMENT.value)


def outcome_response(outcome: LendingOutcome) -> dict[str, Any]:
    """Translate a coordinator outcome into a tool response."""
    if not outcome.ok:
        return error_response(outcome.message, outcome.error.value, outcome.retryable)

    data: dict[str, Any] = {}
    if outcome.loan is not None:
        data["loan"] = outcome.loan.model_dump(mode="json")
    if outcome.book is not None:
        data["book"] = {
            **outcome.book.model_dump(mode="json"),
            "available_copies": outcome.book.available_copies,
        }
    if outcome.warning is not None:
        data["warning"] = {"kind": outcome.warning.value, "messages": outcome.warnings}

    return text_response(outcome.message, data)
