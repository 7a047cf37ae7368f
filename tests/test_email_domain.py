"""
Unit tests for institutional email domain checks.
"""
import pytest

from auth.email_domain import domain_restriction_message, email_domain, is_email_allowed_by_domain


@pytest.mark.parametrize(
    "email, allowed",
    [
        ("student@ufl.edu", True),
        ("Jane.Doe@UFL.EDU", True),
        ("  jane@ufl.edu ", True),
        ("user@gmail.com", False),
        ("user@notufl.edu", False),
        ("user@ufl.edu.evil.com", False),
        ("user@cise.ufl.edu", False),
        ("@ufl.edu", False),
        ("ufl.edu", False),
        ("", False),
        (None, False),
    ],
)
def test_is_email_allowed_by_domain(email, allowed):
    assert is_email_allowed_by_domain(email, ["ufl.edu"]) is allowed


def test_multiple_domains_and_leading_at():
    assert is_email_allowed_by_domain("a@shands.org", ["ufl.edu", "@shands.org"]) is True


def test_empty_allow_list_admits_nobody():
    assert is_email_allowed_by_domain("student@ufl.edu", []) is False


def test_email_domain():
    assert email_domain("Jane@UFL.edu") == "ufl.edu"
    assert email_domain("nobody") == ""
    assert email_domain(None) == ""


def test_domain_restriction_message():
    assert "@ufl.edu" in domain_restriction_message(["ufl.edu"])
    assert "@ufl.edu or @shands.org" in domain_restriction_message(["ufl.edu", "shands.org"])
    assert domain_restriction_message([]) == "Sign-in is currently closed."
