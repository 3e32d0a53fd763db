"""
Pydantic schemas for the /identify endpoint
Handles request validation and response serialization
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class IdentifyRequest(BaseModel):
    """
    Request schema for the /identify endpoint
    Validates that at least one of email or phoneNumber is provided
    Identifiers must be strings; blank strings are treated as null
    """
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "email": "lorraine@hillvalley.edu",
                    "phoneNumber": "123456"
                },
                {
                    "email": "mcfly@hillvalley.edu",
                    "phoneNumber": None
                },
                {
                    "phoneNumber": "123456"
                }
            ]
        }
    )

    email: Optional[str] = Field(
        None,
        description="Customer email address",
        examples=["customer@example.com", None]
    )
    phoneNumber: Optional[str] = Field(
        None,
        description="Customer phone number",
        examples=["123456", None]
    )

    @field_validator('email', 'phoneNumber', mode='before')
    @classmethod
    def validate_identifier(cls, v) -> Optional[str]:
        """
        Reject non-string identifiers and turn blank strings into None
        """
        if v is None:
            return None

        if not isinstance(v, str):
            raise ValueError('must be a string')

        v = v.strip()
        if not v:
            return None
        return v

    @model_validator(mode='after')
    def validate_at_least_one_field(self):
        """
        Ensure at least one of email or phoneNumber is provided
        """
        if not self.email and not self.phoneNumber:
            raise ValueError('Either email or phoneNumber must be provided')
        return self


class ContactResponse(BaseModel):
    """
    Contact information in the API response
    Contains consolidated contact data for a customer
    """
    primaryContactId: int = Field(
        description="ID of the primary contact"
    )
    emails: List[str] = Field(
        description="All email addresses of the identity, primary's first",
        examples=[["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"]]
    )
    phoneNumbers: List[str] = Field(
        description="All phone numbers of the identity, primary's first",
        examples=[["123456"]]
    )
    secondaryContactIds: List[int] = Field(
        description="IDs of all secondary contacts linked to the primary",
        examples=[[23]]
    )


class IdentifyResponse(BaseModel):
    """
    Response schema for the /identify endpoint
    Contains the consolidated contact information
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "contact": {
                    "primaryContactId": 1,
                    "emails": ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"],
                    "phoneNumbers": ["123456"],
                    "secondaryContactIds": [23]
                }
            }
        }
    )

    contact: ContactResponse = Field(
        description="Consolidated contact information"
    )


class ErrorResponse(BaseModel):
    """
    Error response schema for API errors
    """
    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "error": "ValidationError",
                    "message": "Either email or phoneNumber must be provided",
                    "details": {"field": "root"}
                },
                {
                    "error": "DatabaseError",
                    "message": "Unable to connect to database"
                }
            ]
        }
    )

    error: str = Field(
        description="Error type or category"
    )
    message: str = Field(
        description="Human-readable error message"
    )
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error details"
    )
