from .ftp import FtpUploader, MISSING_DIR

__all__ = [
    'FtpUploader',
    'MISSING_DIR'
]
