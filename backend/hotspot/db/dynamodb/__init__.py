"""Shared DynamoDB utilities.

This package centralizes:
- boto3 client/resource configuration
- typed, expressive errors and botocore error mapping
- cursor pagination token encoding/decoding
- the generic table accessor and the multi-partition "between" query
- an in-memory table handle for tests and sample data

"""
