import os
from typing import Iterable, List, Optional

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, EndpointConnectionError

import debt_pipeline.config as config
from debt_pipeline.error_handler import retryable_operation
from debt_pipeline.exceptions import S3OperationError
from debt_pipeline.logging_config import create_logger
from debt_pipeline.utils import s3_init

logger = create_logger(__name__)


@retryable_operation(
    max_attempts=3,
    initial_delay=2.0,
    retry_on=(EndpointConnectionError, ConnectionError),
)
def _upload_to_s3(s3_client, local_path: str, bucket_name: str, s3_key: str) -> None:
    """Upload file to S3 with retry logic."""
    s3_client.upload_file(local_path, bucket_name, s3_key)


class Upload:
    """Publish the files written by a pipeline run to the S3 landing area.

    Files land under ``s3://{S3_BUCKET_NAME}/{LANDING_AREA_FOLDER}/``,
    keyed by their file name.
    """

    def __init__(
        self,
        s3_client=None,
        bucket_name: Optional[str] = None,
        folder: Optional[str] = None,
    ) -> None:
        logger.info("🚀 Initializing Upload Process")
        logger.info(f"   Environment Target: {config.TARGET}")

        self.s3_client = s3_client or s3_init()
        self.bucket_name = bucket_name or config.S3_BUCKET_NAME
        self.folder = (folder or config.LANDING_AREA_FOLDER).strip("/")

    def s3_key(self, local_path: str) -> str:
        return f"{self.folder}/{os.path.basename(local_path)}"

    def upload_file(self, local_path: str) -> str:
        """
        Upload one local file and return its S3 URI.

        :raises S3OperationError: If the file is missing or the upload fails
        """
        if not os.path.isfile(local_path):
            raise S3OperationError(f"Local file not found: {local_path}")

        s3_key = self.s3_key(local_path)
        try:
            _upload_to_s3(self.s3_client, local_path, self.bucket_name, s3_key)
        except (ClientError, EndpointConnectionError, S3UploadFailedError) as e:
            raise S3OperationError(
                f"Failed to upload {local_path} to s3://{self.bucket_name}/{s3_key}: {e}"
            )

        s3_uri = f"s3://{self.bucket_name}/{s3_key}"
        logger.info(f"Successfully uploaded {local_path} to {s3_uri}")
        return s3_uri

    def run(self, paths: Iterable[str]) -> List[str]:
        """
        Upload every path in ``paths``.

        :return: S3 URIs of the uploaded files, in input order
        """
        uploaded = [self.upload_file(path) for path in paths]
        logger.info(f"Uploaded {len(uploaded)} files to s3://{self.bucket_name}/{self.folder}")
        return uploaded
