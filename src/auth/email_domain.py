"""
Institutional email domain checks.
"""


def email_domain(email: str | None) -> str:
    """Return the lower-cased domain part of an email, or '' when there is none."""
    if not email or "@" not in email:
        return ""
    return email.strip().lower().rsplit("@", 1)[1]


def is_email_allowed_by_domain(email: str | None, allowed_domains: list[str]) -> bool:
    """
    Check if email is from an allowed domain.

    Args:
        email: Email address to check
        allowed_domains: Allowed domain names (e.g., ['ufl.edu'])

    Returns:
        True if the address ends with '@<domain>' for one of the allowed domains
    """
    if not email or not allowed_domains:
        return False

    email = email.lower().strip()
    local_part = email.split("@", 1)[0]
    if not local_part:
        return False

    for domain in allowed_domains:
        if email.endswith(f"@{domain.lower().lstrip('@')}"):
            return True

    return False


def domain_restriction_message(allowed_domains: list[str]) -> str:
    """User-facing message naming the domains that may hold a session."""
    if not allowed_domains:
        return "Sign-in is currently closed."
    addresses = " or ".join(f"@{domain}" for domain in allowed_domains)
    return f"Please sign in with your university email address ({addresses})."
