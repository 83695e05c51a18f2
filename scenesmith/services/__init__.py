from .asset_store import AssetStore
from .backend import ImageBackendProtocol, create_image_backend
from .downloader import ImageDownloader
from .midjourney import MidjourneyService
from .progress import ProgressLedger
from .script_loader import load_script

__all__ = [
    "AssetStore",
    "ImageBackendProtocol",
    "ImageDownloader",
    "MidjourneyService",
    "ProgressLedger",
    "create_image_backend",
    "load_script",
]
