"""
Schema validation tests for Identity Reconciliation API
"""

import pytest
from pydantic import ValidationError

from schemas import IdentifyRequest, ContactResponse, IdentifyResponse, ErrorResponse


@pytest.mark.parametrize("case, expected", [
    ({"email": "test@example.com", "phoneNumber": "+1234567890"}, ("test@example.com", "+1234567890")),
    ({"email": "user@domain.org"}, ("user@domain.org", None)),
    ({"phoneNumber": "123456"}, (None, "123456")),
    ({"email": "  padded@example.com ", "phoneNumber": ""}, ("padded@example.com", None)),
    ({"email": None, "phoneNumber": "123456"}, (None, "123456")),
])
def test_identify_request_valid(case, expected):
    request = IdentifyRequest(**case)
    assert (request.email, request.phoneNumber) == expected


@pytest.mark.parametrize("case", [
    {},
    {"email": None, "phoneNumber": None},
    {"email": "   "},
    {"phoneNumber": 123456},
    {"email": 42},
    {"email": {"address": "a@example.com"}},
])
def test_identify_request_invalid(case):
    with pytest.raises(ValidationError):
        IdentifyRequest(**case)


def test_identify_response_shape():
    contact = ContactResponse(
        primaryContactId=1,
        emails=["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"],
        phoneNumbers=["123456"],
        secondaryContactIds=[23]
    )

    assert IdentifyResponse(contact=contact).model_dump() == {
        "contact": {
            "primaryContactId": 1,
            "emails": ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"],
            "phoneNumbers": ["123456"],
            "secondaryContactIds": [23]
        }
    }


def test_error_response_details_optional():
    error = ErrorResponse(error="DatabaseError", message="Unable to connect to database")
    assert error.model_dump() == {
        "error": "DatabaseError",
        "message": "Unable to connect to database",
        "details": None
    }
