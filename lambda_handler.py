"""
AWS Lambda handler for Identity Reconciliation System
This module adapts the FastAPI application to work with AWS Lambda + API Gateway
"""

import os
import logging
import json
from mangum import Mangum
from main import app

logger = logging.getLogger(__name__)

# Lifespan events are not delivered by API Gateway
handler = Mangum(
    app,
    lifespan="off",
    text_mime_types=[
        "application/json",
        "application/javascript",
        "application/xml",
        "application/vnd.api+json",
        "text/plain",
        "text/html"
    ],
    exclude_headers=["x-amzn-trace-id"]
)


def _describe_event(event):
    """Method and path of an API Gateway v1 or v2 event"""
    if event.get('version') == '2.0':
        http = event.get('requestContext', {}).get('http', {})
        return "v2", http.get('method', 'UNKNOWN'), http.get('path', 'UNKNOWN')
    if 'httpMethod' in event:
        return "v1", event.get('httpMethod', 'UNKNOWN'), event.get('path', 'UNKNOWN')
    return None, 'UNKNOWN', 'UNKNOWN'


def lambda_handler(event, context):
    """
    AWS Lambda entry point

    Args:
        event: API Gateway event data
        context: Lambda runtime context

    Returns:
        API Gateway response format
    """
    logger.info(f"Lambda function: {context.function_name} (version {context.function_version})")
    logger.info(f"Environment: {os.getenv('ENVIRONMENT', 'not-set')}")

    gateway_version, method, path = _describe_event(event)
    if gateway_version:
        logger.info(f"API Gateway {gateway_version} event: {method} {path}")
    else:
        logger.info(f"Unknown event format. Event keys: {list(event.keys())}")

    try:
        response = handler(event, context)
        logger.info(f"Mangum response status: {response.get('statusCode', 'UNKNOWN')}")
        return response

    except Exception as e:
        logger.error(f"Lambda handler error: {e}", exc_info=True)

        return {
            "statusCode": 500,
            "headers": {
                "Content-Type": "application/json",
                "Access-Control-Allow-Origin": "*"
            },
            "body": json.dumps({
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "requestId": getattr(context, "aws_request_id", None)
            })
        }
