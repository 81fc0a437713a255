"""
Domain builder - Normalize and merge filter expressions for registry reads.

A domain is the backend's filter language: a list of terms in prefix
notation where each term is either a filter clause ``[field, operator, value]``
or a logical operator (``&``, ``|``, ``!``) applying to the terms after it.
Top-level expressions are ANDed by the backend.

Supports:
- Single clause input (``["name", "=", "X"]``) wrapped into a domain
- Domain input (list of clauses and logical operators) passed through
- Explicit AND-combination of caller domains with per-entity default domains
- Operator validation (comparators the backend understands)
"""

from typing import Any, Sequence

from spp_adaptor.errors import DomainError


# Comparison operators the backend accepts in a filter clause
ALLOWED_OPS = {
    "=", "!=", ">", ">=", "<", "<=", "=?",
    "=like", "like", "not like", "ilike", "not ilike", "=ilike",
    "in", "not in", "child_of", "parent_of",
}

# Prefix operators: "&" and "|" take two expressions, "!" takes one
LOGICAL_OPS = {"&": 2, "|": 2, "!": 1}


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _is_term(value: Any) -> bool:
    """A domain term is a clause-like sequence or a logical operator."""
    return _is_sequence(value) or (isinstance(value, str) and value in LOGICAL_OPS)


def validate_clause(clause: Sequence[Any]) -> list[Any]:
    """Validate a single filter clause and return it as a list.

    Args:
        clause: A ``(field, operator, value)`` sequence.

    Returns:
        The clause as a 3-element list.

    Raises:
        DomainError: If the clause does not have exactly 3 elements, the
            field is not a non-empty string, or the operator is unknown.
    """
    if not _is_sequence(clause) or len(clause) != 3:
        raise DomainError(f"Filter clause must have exactly 3 elements: {clause!r}")

    field, op, value = clause
    if not isinstance(field, str) or not field:
        raise DomainError(f"Filter clause field must be a non-empty string: {clause!r}")
    if op not in ALLOWED_OPS:
        raise DomainError(f"Invalid operator '{op}'. Allowed: {sorted(ALLOWED_OPS)}")

    if _is_sequence(value):
        value = list(value)
    return [field, op, value]


def normalize_domain(caller_input: Any) -> list[Any]:
    """Canonicalize caller input into a domain.

    If every top-level element is itself a term (a clause sequence or a
    logical operator) the input is already a domain. Otherwise it is a single
    clause and gets wrapped in a one-element list. Applying this to its own
    output returns an equal list.

    Args:
        caller_input: A single clause, a domain, or None/empty.

    Returns:
        A new list of validated terms.

    Raises:
        DomainError: If the input is neither a clause nor a domain.
    """
    if caller_input is None:
        return []
    if not _is_sequence(caller_input):
        raise DomainError(f"Domain must be a clause or a list of clauses: {caller_input!r}")
    if len(caller_input) == 0:
        return []

    if all(_is_term(term) for term in caller_input):
        terms = list(caller_input)
    else:
        terms = [caller_input]

    domain: list[Any] = []
    for term in terms:
        if isinstance(term, str):
            domain.append(term)
        else:
            domain.append(validate_clause(term))

    _check_arity(domain)
    return domain


def _check_arity(domain: list[Any]) -> None:
    """Make sure every logical operator has enough expressions after it."""
    # Walk right to left counting complete expressions
    available = 0
    for term in reversed(domain):
        if isinstance(term, str):
            needed = LOGICAL_OPS[term]
            if available < needed:
                raise DomainError(f"Operator '{term}' is missing operands in {domain!r}")
            available -= needed - 1
        else:
            available += 1


def and_domains(*domains: Sequence[Any]) -> list[Any]:
    """Combine normalized domains with AND.

    The backend ANDs top-level expressions, so the combination keeps every
    term of every domain in the order given. Empty domains are skipped.

    Args:
        *domains: Normalized domains.

    Returns:
        A new domain matching records that satisfy all inputs.
    """
    combined: list[Any] = []
    for domain in domains:
        combined.extend(domain)
    return combined


def build_domain(caller_input: Any, default_clauses: Sequence[Any]) -> list[Any]:
    """Build the domain for a read from caller input and entity defaults.

    Caller terms come first, defaults are appended. Empty caller input yields
    exactly the default clauses.

    Args:
        caller_input: A single clause, a domain, or None/empty.
        default_clauses: The fixed default domain for the entity kind.

    Returns:
        The merged domain.

    Example:
        >>> build_domain([["registrant_id", "=", "GRP_1"]],
        ...              [["is_registrant", "=", True], ["is_group", "=", True]])
        [['registrant_id', '=', 'GRP_1'], ['is_registrant', '=', True], ['is_group', '=', True]]
    """
    return and_domains(normalize_domain(caller_input), normalize_domain(default_clauses))
