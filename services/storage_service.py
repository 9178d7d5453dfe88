# services/storage_service.py
import boto3
from db.config import Settings, settings as default_settings

class StorageService:
    def __init__(self, cfg: Settings = default_settings) -> None:
        self.client = boto3.client(
            "s3",
            region_name=cfg.S3_REGION,
            aws_access_key_id=cfg.S3_ACCESS_KEY_ID,
            aws_secret_access_key=cfg.S3_SECRET_ACCESS_KEY,
            endpoint_url=cfg.S3_ENDPOINT_URL,
        )
        self.bucket = cfg.S3_BUCKET
        self.ttl_s = cfg.S3_SIGNED_URL_TTL_S

    def signed_download_url(self, key: str, *, filename: str) -> str:
        # Presigning is local; no request reaches S3 here
        return self.client.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": self.bucket,
                "Key": key.lstrip("/"),
                "ResponseContentDisposition": f'attachment; filename="{filename}"',
            },
            ExpiresIn=self.ttl_s,
        )
