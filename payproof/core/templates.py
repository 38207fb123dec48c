"""
payproof/core/templates.py

Provider hash derivation.

A provider hash commits to the HTTP request template a witness was asked
to capture: which URL, which method and body, which response patterns must
match and which parts are revealed. Approving a provider hash approves
exactly that template and nothing else.

    provider_hash = keccak256(RFC8785({url, method, body,
                                       responseMatches, responseRedactions}))

List-style templates carry an {{INDEX}} placeholder selecting one row of
a transaction history; each index is a distinct template with its own hash.
"""

import re
from typing import Any, Dict, List

from payproof.core.canonical import canonical_hash


HASHED_TEMPLATE_FIELDS = ("url", "method", "body", "responseMatches", "responseRedactions")

_INDEX_PLACEHOLDER = re.compile(r"\{\{\s*INDEX\s*\}\}")


def hash_input(template: Dict[str, Any]) -> Dict[str, Any]:
    """The subset of a template that the provider hash covers."""
    return {
        "url": template["url"],
        "method": template["method"],
        "body": template.get("body") or "",
        "responseMatches": list(template.get("responseMatches") or []),
        "responseRedactions": list(template.get("responseRedactions") or []),
    }


def hash_provider_params(template: Dict[str, Any]) -> str:
    """0x-prefixed provider hash of a single template."""
    return "0x" + canonical_hash(hash_input(template)).hex()


def materialize_index(value: Any, index: int) -> Any:
    """Replace every {{INDEX}} in value (recursively) with index."""
    if isinstance(value, str):
        return _INDEX_PLACEHOLDER.sub(str(index), value)
    if isinstance(value, list):
        return [materialize_index(v, index) for v in value]
    if isinstance(value, dict):
        return {k: materialize_index(v, index) for k, v in value.items()}
    return value


def provider_hashes_for_template(
    template: Dict[str, Any],
    count: int,
    include_additional_proofs: bool = True,
) -> List[str]:
    """
    Provider hashes for the first `count` rows of a list-style template,
    followed by one hash per entry of template["additionalProofs"].
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    hashes = [hash_provider_params(materialize_index(template, i)) for i in range(count)]
    if include_additional_proofs:
        for extra in template.get("additionalProofs") or []:
            hashes.append(hash_provider_params(extra))
    return hashes
