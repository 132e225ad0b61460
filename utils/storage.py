# utils/storage.py
import os, mimetypes
from typing import Optional

DRIVER = os.getenv("STORAGE_DRIVER", "local").lower()
MEDIA_ROOT = os.getenv("MEDIA_ROOT", "media")
BUCKET = os.getenv("S3_BUCKET")
REGION = os.getenv("AWS_REGION", "us-east-1")
PUBLIC_READ = os.getenv("S3_PUBLIC_READ", "false").lower() == "true"
EXPIRE = int(os.getenv("S3_URL_EXPIRE_SECONDS", "604800"))  # 7d
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_ANON_KEY")
SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "composites").strip()

def _guess_content_type(key: str) -> str:
    return mimetypes.guess_type(key)[0] or "application/octet-stream"

class Storage:
    def save_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Save and return a fetchable URL (absolute, or relative to the service)."""
        raise NotImplementedError

class LocalStorage(Storage):
    def __init__(self, root: str = MEDIA_ROOT):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def save_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        path = os.path.join(self.root, key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        # main.py serves this directory under /media
        return f"/media/{key}"

class S3Storage(Storage):
    def __init__(self):
        if not BUCKET:
            raise RuntimeError("S3_BUCKET env var is required for the s3 storage driver.")
        import boto3  # only needed for the s3 driver
        self.s3 = boto3.client("s3", region_name=REGION)

    def save_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        ct = content_type or _guess_content_type(key)
        extra = {"ContentType": ct}
        if PUBLIC_READ:
            extra["ACL"] = "public-read"
        self.s3.put_object(Bucket=BUCKET, Key=key, Body=data, **extra)
        if PUBLIC_READ:
            return f"https://{BUCKET}.s3.amazonaws.com/{key}"
        return self.s3.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": BUCKET, "Key": key},
            ExpiresIn=EXPIRE,
        )

class SupabaseStorage(Storage):
    def __init__(self):
        if not (SUPABASE_URL and SUPABASE_KEY):
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY are required for the supabase storage driver.")
        from supabase import create_client
        self.client = create_client(SUPABASE_URL, SUPABASE_KEY)

    def save_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        bucket = self.client.storage.from_(SUPABASE_BUCKET)
        ct = content_type or _guess_content_type(key)
        bucket.upload(file=data, path=key, file_options={"content-type": ct, "upsert": "true"})

        signed = bucket.create_signed_url(path=key, expires_in=EXPIRE)
        # SDK versions disagree on the key name
        url: Optional[str] = None
        if isinstance(signed, dict):
            url = signed.get("signedURL") or signed.get("signed_url") or signed.get("signedUrl")
        elif isinstance(signed, str):
            url = signed
        if not url:
            raise RuntimeError(f"Supabase returned no signed URL for {key}")
        return url

def get_storage(driver: str | None = None) -> Storage:
    d = (driver or DRIVER).lower()
    if d == "s3":
        return S3Storage()
    if d == "supabase":
        return SupabaseStorage()
    return LocalStorage()
