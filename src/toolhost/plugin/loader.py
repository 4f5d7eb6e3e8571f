"""Plugin loader - discovers plugin executables from manifests on disk."""

from __future__ import annotations

import logging
import shlex
import sys
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from toolhost.audit import AuditLogger
from toolhost.plugin.client import PluginClient
from toolhost.plugin.handshake import DEFAULT_HANDSHAKE, HandshakeConfig, HandshakeError
from toolhost.plugin.rpc import PluginTransportError, ToolRPCClient

if TYPE_CHECKING:
    from toolhost.plugin.watcher import PluginWatcher

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.yaml"


class PluginLoadError(Exception):
    """Raised when a plugin fails to load."""

    pass


@dataclass
class LoadedPlugin:
    """A running plugin and the tool it serves."""

    name: str
    directory: Path
    client: PluginClient
    tool: ToolRPCClient


class PluginLoader:
    """Discovers, starts and stops plugins from a directory.

    Plugins are directories containing a manifest.yaml with either:
    - module: Python module run as `python -m <module>`
    - command: executable and arguments (list or shell-style string)
    and optionally `env:` (extra environment variables).

    Tool names are unique across attached plugins and must not shadow a
    reserved (in-process) tool name.
    """

    def __init__(
        self,
        plugins_dir: Path,
        handshake: HandshakeConfig = DEFAULT_HANDSHAKE,
        start_timeout: float = 10.0,
        rpc_timeout: float | None = None,
        audit: AuditLogger | None = None,
        env: dict[str, str] | None = None,
        reserved_names: Iterable[str] = (),
    ) -> None:
        """Initialize the loader.

        Args:
            plugins_dir: Directory to scan for plugins.
            handshake: Handshake tuple every plugin must announce.
            start_timeout: Seconds to wait for each plugin's handshake.
            rpc_timeout: Per-call deadline for plugin RPC, or None.
            audit: Audit log receiving attach, reject and unload events.
            env: Environment variables passed to every plugin; manifest
                values take precedence.
            reserved_names: Tool names plugins may not use.
        """
        self._plugins_dir = plugins_dir
        self._handshake = handshake
        self._start_timeout = start_timeout
        self._rpc_timeout = rpc_timeout
        self._audit = audit
        self._env = dict(env or {})
        self._reserved = frozenset(reserved_names)
        self._lock = threading.RLock()
        self._plugins: dict[Path, LoadedPlugin] = {}
        self._watcher: PluginWatcher | None = None
        self._listeners: list[Callable[[], None]] = []

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Call `callback` after every plugin attach or unload."""
        self._listeners.append(callback)

    @property
    def plugins_dir(self) -> Path:
        return self._plugins_dir

    def get_all_tools(self) -> list[ToolRPCClient]:
        """Return the tool proxies of every attached plugin, sorted by name."""
        with self._lock:
            loaded = sorted(self._plugins.values(), key=lambda p: p.name)
        return [p.tool for p in loaded]

    def get_tool(self, name: str) -> ToolRPCClient | None:
        """Return the attached plugin tool with this name, if any."""
        with self._lock:
            for loaded in self._plugins.values():
                if loaded.name == name:
                    return loaded.tool
        return None

    def list_tools(self) -> list[str]:
        """Return the names of every attached plugin tool."""
        with self._lock:
            return sorted(p.name for p in self._plugins.values())

    def is_loaded(self, plugin_dir: Path) -> bool:
        with self._lock:
            return _key(plugin_dir) in self._plugins

    def discover_plugins(self) -> list[ToolRPCClient]:
        """Start every plugin found in the plugins directory.

        Plugins that fail to load are logged and skipped.

        Returns:
            Tool proxies of the attached plugins.
        """
        if not self._plugins_dir.exists():
            logger.info("Plugin directory does not exist: %s", self._plugins_dir)
            return self.get_all_tools()

        for item in sorted(self._plugins_dir.iterdir()):
            if not item.is_dir() or not (item / MANIFEST_NAME).exists():
                continue
            if self.is_loaded(item):
                continue

            try:
                self.load_plugin(item)
            except PluginLoadError as e:
                logger.error("Failed to load plugin %s: %s", item.name, e)

        return self.get_all_tools()

    def load_plugin(self, plugin_dir: Path) -> ToolRPCClient:
        """Start a single plugin and attach to it.

        Args:
            plugin_dir: Plugin directory containing manifest.yaml.

        Returns:
            Connected tool proxy.

        Raises:
            PluginLoadError: If the manifest is invalid, the plugin fails to
                attach, or its tool name is already taken.
        """
        key = _key(plugin_dir)
        if self.is_loaded(key):
            raise PluginLoadError(f"Plugin already loaded: {plugin_dir}")

        manifest = self._read_manifest(plugin_dir / MANIFEST_NAME)
        command = self._command(manifest, plugin_dir)

        manifest_env = manifest.get("env") or {}
        if not isinstance(manifest_env, dict):
            raise PluginLoadError(f"'env' must be a mapping in {plugin_dir}")
        env = {**self._env, **{str(k): str(v) for k, v in manifest_env.items()}}

        client = PluginClient(
            command,
            handshake=self._handshake,
            start_timeout=self._start_timeout,
            rpc_timeout=self._rpc_timeout,
            env=env,
            cwd=plugin_dir,
        )
        try:
            tool = client.start()
            name = tool.name()
        except (HandshakeError, PluginTransportError, OSError) as e:
            client.kill()
            self._reject(plugin_dir, str(e))
            raise PluginLoadError(str(e)) from e

        with self._lock:
            if name in self._reserved or any(p.name == name for p in self._plugins.values()):
                reason = f"Tool name '{name}' is already in use"
            elif key in self._plugins:
                reason = f"Plugin already loaded: {plugin_dir}"
            else:
                reason = ""
                self._plugins[key] = LoadedPlugin(name, key, client, tool)

        if reason:
            client.kill()
            self._reject(plugin_dir, reason)
            raise PluginLoadError(reason)

        if self._audit:
            self._audit.log_plugin_event("attached", {"directory": str(plugin_dir), "tool": name})
        logger.info("Loaded plugin %s from %s", name, plugin_dir)
        self._notify()
        return tool

    def unload(self, plugin_dir: Path) -> bool:
        """Disconnect a plugin and wait for it to exit.

        Returns:
            True if the plugin was loaded.
        """
        with self._lock:
            loaded = self._plugins.pop(_key(plugin_dir), None)
        if loaded is None:
            return False

        loaded.client.close()
        if self._audit:
            self._audit.log_plugin_event(
                "unloaded", {"directory": str(plugin_dir), "tool": loaded.name}
            )
        logger.info("Unloaded plugin %s from %s", loaded.name, plugin_dir)
        self._notify()
        return True

    def reload(self, plugin_dir: Path) -> ToolRPCClient:
        """Unload a plugin if it is running, then load it again."""
        self.unload(plugin_dir)
        return self.load_plugin(plugin_dir)

    def watch(self) -> None:
        """Start hot-reloading plugins as their directories change."""
        from toolhost.plugin.watcher import PluginWatcher

        if self._watcher is not None:
            return
        self._watcher = PluginWatcher(self)
        self._watcher.start()

    def stop_watching(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.exception("Plugin change listener failed")

    def _reject(self, plugin_dir: Path, reason: str) -> None:
        if self._audit:
            self._audit.log_plugin_event(
                "rejected", {"directory": str(plugin_dir), "reason": reason}
            )

    def _read_manifest(self, manifest_path: Path) -> dict[str, Any]:
        try:
            with open(manifest_path) as f:
                manifest = yaml.safe_load(f)
        except OSError as e:
            raise PluginLoadError(f"Cannot read manifest {manifest_path}: {e}") from e
        except yaml.YAMLError as e:
            raise PluginLoadError(f"Invalid manifest {manifest_path}: {e}") from e

        if not isinstance(manifest, dict):
            raise PluginLoadError(f"Manifest must be a mapping: {manifest_path}")
        return manifest

    def _command(self, manifest: dict[str, Any], plugin_dir: Path) -> list[str]:
        module = manifest.get("module")
        command = manifest.get("command")

        if module and command:
            raise PluginLoadError(f"Manifest sets both 'module' and 'command' in {plugin_dir}")
        if module:
            return [sys.executable, "-m", str(module)]
        if isinstance(command, str) and command.strip():
            return shlex.split(command)
        if isinstance(command, list) and command:
            return [str(part) for part in command]
        raise PluginLoadError(f"Manifest needs 'module' or 'command' in {plugin_dir}")

    def close(self) -> None:
        """Stop watching, then disconnect every plugin and wait for it to exit."""
        self.stop_watching()
        with self._lock:
            loaded = list(self._plugins.values())
            self._plugins.clear()
        for plugin in loaded:
            plugin.client.close()


def _key(plugin_dir: Path) -> Path:
    return Path(plugin_dir).resolve()
