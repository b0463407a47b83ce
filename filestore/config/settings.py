# Configuration management

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings  # type: ignore


def _data_dir(*parts: str) -> str:
    return os.path.join(os.getcwd(), "data", *parts)


DEFAULT_ALLOWED_FILE_TYPES = [
    "jpeg", "jpg", "png", "gif", "webp", "flif", "tif", "tiff", "bmp",
    "zip", "tar", "gz", "bz2", "7z",
    "mp4", "ogg", "mkv", "webm", "mov", "avi", "mp3", "wav",
    "pdf", "rtf", "docx", "pptx", "xlsx", "doc", "ppt", "xls",
    "jp2", "jpm", "jpx", "odt", "ods", "odp",
    "xml", "ics", "txt", "log", "json", "svg", "jfif",
]

DEFAULT_THUMBNAIL_FILE_ICONS = [
    "aac.png", "ai.png", "aiff.png", "avi.png", "bmp.png", "c.png", "cpp.png",
    "css.png", "csv.png", "dat.png", "dmg.png", "doc.png", "dotx.png",
    "dwg.png", "dxf.png", "eps.png", "exe.png", "flv.png", "gif.png", "h.png",
    "hpp.png", "html.png", "ics.png", "iso.png", "java.png", "jpg.png",
    "js.png", "key.png", "less.png", "mid.png", "mp3.png", "mp4.png",
    "mpg.png", "odf.png", "ods.png", "odt.png", "otp.png", "ots.png",
    "ott.png", "pdf.png", "php.png", "png.png", "ppt.png", "psd.png",
    "py.png", "qt.png", "rar.png", "rb.png", "rtf.png", "sass.png",
    "scss.png", "sql.png", "tga.png", "tgz.png", "tiff.png", "txt.png",
    "wav.png", "xls.png", "xlsx.png", "xml.png", "yml.png", "zip.png",
]


class Settings(BaseSettings):
    # Storage
    storage_backend: str = "fs"  # fs or s3
    storage_path: str = Field(default_factory=lambda: _data_dir("files"))
    local_cache_path: str = Field(default_factory=lambda: _data_dir("localcache"))

    # S3 / S3-compatible object store
    s3_bucket: str = ""
    s3_endpoint_url: Optional[str] = None
    s3_region: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    s3_create_bucket: bool = False  # MinIO/dev backends only
    s3_connect_timeout: int = 5  # seconds
    s3_read_timeout: int = 30  # seconds
    s3_max_attempts: int = 3

    # Uploads
    max_upload_file_size: int = 20 * 1024 * 1024
    allowed_file_types: List[str] = DEFAULT_ALLOWED_FILE_TYPES

    # Caches
    metadata_cache_ttl_seconds: int = 10 * 60
    metadata_cache_check_period_seconds: int = 60
    metadata_cache_max_entries: int = 100_000

    # Images
    max_image_size: int = 1600  # clamp for requested width/height
    icons_base_dir: str = Field(default_factory=lambda: os.path.join(os.getcwd(), "icons"))
    no_image_filename: str = "_no-image.png"
    blank_image_filename: str = "_blank.png"
    thumbnail_file_icons: List[str] = DEFAULT_THUMBNAIL_FILE_ICONS

    # Application
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
