"""toyapi_shared — Shared utilities for ToyApi Lambda functions.

Provides:
    - Cognito JWT authentication (authorizer claims, bearer header, cookie)
    - DynamoDB client singleton
    - HTTP response helpers with CORS
    - DynamoDB serialization/deserialization
"""

__version__ = "1.0.0"
