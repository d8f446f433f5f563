"""Prompt construction for the AI fallback tier.

This module builds:
- A deterministic JSON serialization of one transaction with a fixed field
  order.
- The system instructions and user content for single-party classification.
- The strict ``response_format`` (JSON Schema) object for the OpenAI
  Responses API.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .models import UNCATEGORIZED, ClassificationRequest

TRANSACTION_FIELD_ORDER: tuple[str, ...] = (
    "party",
    "direction",
    "amount",
    "date",
    "info",
)

BEGIN_MARKER = "BEGIN_TRANSACTION_JSON"
END_MARKER = "END_TRANSACTION_JSON"


def serialize_request_to_json(request: ClassificationRequest) -> str:
    """Serialize a request to a JSON object with a fixed field order.

    Direction is spelled out (``debit`` when money is paid to the party,
    ``credit`` otherwise) so the model does not have to interpret a boolean.
    """

    values: dict[str, Any] = {
        "party": request.party_name.strip(),
        "direction": "debit" if request.is_debtor else "credit",
        "amount": request.amount or None,
        "date": request.date or None,
        "info": request.info or None,
    }
    return json.dumps({k: values[k] for k in TRANSACTION_FIELD_ORDER}, ensure_ascii=False)


def build_system_instructions() -> str:
    return (
        "You are an agent that categorizes bank and card transactions by their "
        "counterparty. Choose exactly one category from the provided list. Never invent "
        f"categories; answer {UNCATEGORIZED!r} when none fits. Output JSON only that "
        "conforms to the specified schema."
    )


def build_user_content(request: ClassificationRequest, categories: Sequence[str]) -> str:
    """Build user content listing the categories and embedding the transaction.

    The transaction JSON sits between ``BEGIN_TRANSACTION_JSON`` and
    ``END_TRANSACTION_JSON`` lines.
    """

    lines: list[str] = ["Available categories:"]
    lines.extend(f"- {name}" for name in categories)
    lines.append("")
    lines.append(
        "Categorize the following transaction. 'direction' is 'debit' when money was paid "
        "to the party and 'credit' when money was received from it."
    )
    lines.append(BEGIN_MARKER)
    lines.append(serialize_request_to_json(request))
    lines.append(END_MARKER)
    lines.append("")
    lines.append(
        "Respond with 'category' (one of the names above, verbatim) and a one-sentence "
        "'rationale'."
    )
    return "\n".join(lines)


def allowed_categories(categories: Sequence[str]) -> list[str]:
    """Deduplicated, non-blank names in order, always ending with ``Uncategorized``."""

    names = [c for c in dict.fromkeys(str(n).strip() for n in categories) if c]
    if UNCATEGORIZED not in names:
        names.append(UNCATEGORIZED)
    return names


def build_response_format(categories: Sequence[str]) -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema response_format object.

    Schema shape::

        {
          "type": "object",
          "properties": {
            "category": {"type": "string", "enum": [..., "Uncategorized"]},
            "rationale": {"type": "string"}
          },
          "required": ["category", "rationale"],
          "additionalProperties": false
        }
    """

    result: ResponseFormatTextJSONSchemaConfigParam = {
        "type": "json_schema",
        "name": "party_category",
        "schema": {
            "type": "object",
            "properties": {
                "category": {"type": "string", "enum": allowed_categories(categories)},
                "rationale": {"type": "string"},
            },
            "required": ["category", "rationale"],
            "additionalProperties": False,
        },
        "strict": True,
    }
    return result


__all__ = [
    "BEGIN_MARKER",
    "END_MARKER",
    "allowed_categories",
    "build_response_format",
    "build_system_instructions",
    "build_user_content",
    "serialize_request_to_json",
]
