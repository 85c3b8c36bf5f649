from __future__ import annotations

from pathlib import Path

from loguru import logger

from app.viewmodels.main_vm import FamilyAppVM
from core.services.date_grouping import DateGroupingEngine
from infrastructure.cloudinary_service import CloudinaryClient
from infrastructure.delete_service import PhotoDeleteService
from infrastructure.gateway import PersistenceGateway
from infrastructure.local_backend import LocalBackend
from infrastructure.local_store import LocalKeyValueStore
from infrastructure.logging import find_latest_log_file, init_logging
from infrastructure.settings import AppConfig, JsonSettings, load_app_config
from infrastructure.upload_service import UploadService

BASE_DIR = Path(__file__).parent
DEFAULT_STORE_PATH = Path.home() / ".local" / "share" / "FamilyAlbum" / "local_store.json"


class Services:
    """Everything the UI needs, constructed once and passed by reference."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self.store = LocalKeyValueStore.shared(config.local_store_path or DEFAULT_STORE_PATH)
        self.engine = DateGroupingEngine(epoch_key=config.dday)
        self.gateway = PersistenceGateway(LocalBackend(self.store, default_albums=config.albums))
        self.cdn = CloudinaryClient(config.cloudinary, engine=self.engine)
        self.uploads = UploadService(self.cdn, self.gateway, self.engine)
        self.deletes = PhotoDeleteService(self.cdn, self.gateway)
        self.vm = FamilyAppVM(self.gateway, self.engine, self.store, config, cdn=self.cdn)


def build_services(settings_path: str | Path | None = None) -> Services:
    path = Path(settings_path) if settings_path else BASE_DIR / "settings.json"
    settings = JsonSettings(path) if path.exists() else None
    return Services(load_app_config(settings))


def main() -> int:
    services = build_services()
    init_logging(services.config.log_dir, services.config.log_level)
    logger.info("Logging to {}", find_latest_log_file(services.config.log_dir))
    vm = services.vm
    vm.start()
    try:
        vm.load_photos()
        vm.load_albums()
        vm.load_schedules()
        if vm.refresh_storage_usage() is not None:
            logger.info("CDN storage used: {}%", vm.storage_usage_percent)
        logger.info(
            "Ready ({} storage): {} photos in {} days, {} albums, {} schedules",
            vm.storage_mode,
            len(vm.photos),
            len(vm.timeline()),
            len(vm.albums),
            len(vm.schedules),
        )
        if vm.last_error:
            logger.warning("Startup finished with error: {}", vm.last_error)
    finally:
        vm.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
