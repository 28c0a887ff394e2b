import os
import re
from typing import Any

import boto3
from botocore.exceptions import ClientError

from debt_pipeline.logging_config import create_logger


def s3_init() -> Any:
    """
    Initialize an S3 client.

    Uses STS to assume ``AWS_ROLE_ARN`` when it is set, otherwise the
    default AWS credential chain.

    :return: S3 client
    :raises ClientError: If S3 initialization fails
    """
    logger = create_logger(__name__)
    region = os.environ.get("AWS_DEFAULT_REGION", "us-east-1")

    try:
        role_arn = os.environ.get("AWS_ROLE_ARN")
        if role_arn:
            sts_client = boto3.client("sts", region_name=region)
            credentials = sts_client.assume_role(
                RoleArn=role_arn, RoleSessionName="IdsDebtPipelineSession"
            )["Credentials"]
            session = boto3.Session(
                aws_access_key_id=credentials["AccessKeyId"],
                aws_secret_access_key=credentials["SecretAccessKey"],
                aws_session_token=credentials["SessionToken"],
                region_name=region,
            )
            logger.info("Using assumed role credentials for S3")
        else:
            session = boto3.Session(region_name=region)

        return session.client("s3")

    except ClientError as e:
        error = e.response.get("Error", {})
        logger.critical(f"Failed to initialize S3 client: {error.get('Code')}")
        logger.critical(f"Detailed Error Message: {error.get('Message')}")
        raise


def standardize_filename(filename: str) -> str:
    """Standardize filename by removing special characters.

    Args:
        filename: Input filename to standardize

    Returns:
        Standardized filename with only alphanumeric characters and underscores
    """
    return re.sub(r"[^a-zA-Z0-9_]", "_", filename).lower()
