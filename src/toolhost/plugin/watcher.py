"""Hot reload for plugin directories.

Watches the plugins directory and keeps the loader in step with it:
- a new plugin directory or manifest loads the plugin
- a modified manifest reloads it
- a removed or renamed plugin directory or manifest unloads it
"""

from __future__ import annotations

import logging
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from toolhost.plugin.loader import MANIFEST_NAME, PluginLoader, PluginLoadError

logger = logging.getLogger(__name__)


class PluginEventHandler(FileSystemEventHandler):
    """Maps file system events below the plugins directory onto the loader."""

    def __init__(self, loader: PluginLoader) -> None:
        super().__init__()
        self._loader = loader
        self._root = loader.plugins_dir.resolve()

    def plugin_dir_for(self, path: str | bytes) -> Path | None:
        """Return the plugin directory an event path belongs to, if any."""
        if isinstance(path, bytes):
            path = path.decode()
        try:
            relative = Path(path).resolve().relative_to(self._root)
        except ValueError:
            return None
        if not relative.parts:
            return None
        # Hidden entries and editor backup files
        if any(part.startswith(".") for part in relative.parts) or relative.name.endswith("~"):
            return None
        return self._root / relative.parts[0]

    def on_created(self, event: FileSystemEvent) -> None:
        plugin_dir = self.plugin_dir_for(event.src_path)
        if plugin_dir is not None:
            self._load(plugin_dir)

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        plugin_dir = self.plugin_dir_for(event.src_path)
        if plugin_dir is None or Path(str(event.src_path)).name != MANIFEST_NAME:
            return
        self._loader.unload(plugin_dir)
        self._load(plugin_dir)

    def on_deleted(self, event: FileSystemEvent) -> None:
        plugin_dir = self.plugin_dir_for(event.src_path)
        if plugin_dir is not None:
            self._unload_if_gone(plugin_dir)

    def on_moved(self, event: FileSystemEvent) -> None:
        source = self.plugin_dir_for(event.src_path)
        if source is not None:
            self._unload_if_gone(source)
        if isinstance(event, FileSystemMovedEvent):
            target = self.plugin_dir_for(event.dest_path)
            if target is not None:
                self._load(target)

    def _load(self, plugin_dir: Path) -> None:
        if self._loader.is_loaded(plugin_dir) or not (plugin_dir / MANIFEST_NAME).exists():
            return
        try:
            self._loader.load_plugin(plugin_dir)
        except PluginLoadError as e:
            logger.error("Failed to load plugin %s: %s", plugin_dir.name, e)

    def _unload_if_gone(self, plugin_dir: Path) -> None:
        if not (plugin_dir / MANIFEST_NAME).exists():
            self._loader.unload(plugin_dir)


class PluginWatcher:
    """Runs a watchdog observer over the loader's plugins directory."""

    def __init__(self, loader: PluginLoader) -> None:
        self._loader = loader
        self._handler = PluginEventHandler(loader)
        self._observer: BaseObserver | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        """Start watching. A missing plugins directory is created first."""
        if self._observer is not None:
            return
        plugins_dir = self._loader.plugins_dir
        plugins_dir.mkdir(parents=True, exist_ok=True)

        observer = Observer()
        observer.schedule(self._handler, str(plugins_dir.resolve()), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching for plugin changes in %s", plugins_dir)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info("Stopped watching %s", self._loader.plugins_dir)
