"""
Package lifecycle orchestration.

PackageManager sequences install, uninstall, update, build and publish on top
of the registry client, the local package registry, the archive service and
the configuration manager.

Install pipeline:
    resolve -> download -> extract -> dependencies -> pre-install hooks
    -> copy files -> persist record -> post-install hooks

Example:
    >>> with PackageManager() as pm:
    ...     pm.install("json-tools")
    ...     pm.list_packages()
"""

import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from criage.config.manifest import (
    COMPRESSION_NORMAL,
    BuildManifest,
    BuildTarget,
    CompressionConfig,
    PackageManifest,
    load_build_config,
    load_local_config,
)
from criage.config.settings import ConfigManager
from criage.core.archive import ArchiveFormat, ArchiveManager, ArchiveMetadata
from criage.core.exceptions import (
    BuildError,
    CriageError,
    DependencyCycleError,
    InstallError,
    ManifestNotFoundError,
    PackageNotInstalledError,
    PublishError,
    RegistryError,
    UninstallError,
    UpdateError,
)
from criage.core.filesystem import (
    copy_matching,
    directory_size,
    safe_rmtree,
    scoped_directory,
)
from criage.core.locking import LockManager
from criage.core.platform import PlatformInfo, detect_platform
from criage.core.ratelimit import RateLimiter
from criage.packages.hooks import execute_hooks, run_build_script
from criage.packages.scaffold import create_package
from criage.registry.client import RegistryClient
from criage.registry.local import LocalPackageRegistry
from criage.registry.models import (
    ApiResponse,
    PackageInfo,
    PackageListResponse,
    SearchResult,
    ServerInfo,
    Statistics,
)

logger = logging.getLogger(__name__)

REQUESTS_PER_SECOND = 5
CACHE_ARCHIVE_NAME = "package.tar.zst"
DEFAULT_BUILD_SCRIPT = "make"
DEFAULT_OUTPUT_DIR = "./build"

# Archives left in the project by earlier builds and publishes
BUILD_ARTIFACT_PATTERNS = ("*.criage", "{name}-*.tar.zst")


class PackageManager:
    """
    Orchestrates the package lifecycle.

    Collaborators are created from the configuration unless injected.

    Args:
        config_manager: Configuration and directory layout
        client: Registry client (default: one rate-limited at 5 requests/s)
        archive_manager: Archive service
        registry: Local package registry (default: loaded from the install roots)
        lock_manager: Cross-process package locks
        platform_info: Platform used for resolution (default: running platform)
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        client: Optional[RegistryClient] = None,
        archive_manager: Optional[ArchiveManager] = None,
        registry: Optional[LocalPackageRegistry] = None,
        lock_manager: Optional[LockManager] = None,
        platform_info: Optional[PlatformInfo] = None,
    ):
        self.config_manager = config_manager or ConfigManager()
        config = self.config_manager.get_config()

        self.rate_limiter: Optional[RateLimiter] = None
        self._owns_client = client is None
        if client is None:
            self.rate_limiter = RateLimiter(REQUESTS_PER_SECOND)
            client = RegistryClient(timeout=config.timeout, rate_limiter=self.rate_limiter)
        self.client = client

        self._owns_archive_manager = archive_manager is None
        self.archive_manager = archive_manager or ArchiveManager(
            config.compression.level
        )

        if registry is None:
            registry = LocalPackageRegistry(
                self.config_manager.get_root(False), self.config_manager.get_root(True)
            )
            registry.load()
        self.registry = registry

        self.lock_manager = lock_manager or LockManager(
            self.config_manager.get_lock_dir()
        )
        self.platform = platform_info or detect_platform()
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    @property
    def _install_chain(self) -> List[str]:
        chain = getattr(self._local, "chain", None)
        if chain is None:
            chain = self._local.chain = []
        return chain

    def install(
        self,
        name: str,
        version: str = "",
        global_: bool = False,
        force: bool = False,
        dev: bool = False,
        arch: str = "",
        os_name: str = "",
    ) -> PackageInfo:
        """
        Install a package and, recursively, its missing dependencies.

        An installed package is left alone unless force is set or a
        different version is requested.

        Args:
            name: Package name
            version: Exact version (default: latest)
            global_: Install into the global scope
            force: Reinstall over an existing install
            dev: Also install dev dependencies
            arch: Target architecture (default: running platform)
            os_name: Target OS (default: running platform)

        Returns:
            Record of the installed package

        Raises:
            DependencyCycleError: If the package is already being installed
                further up the dependency chain
            InstallError: Any other failure, chained to its cause
        """
        existing = self.registry.get(name, global_)
        if (
            not force
            and existing is not None
            and (not version or existing.version == version)
        ):
            logger.info(f"Package {name} is already installed ({existing.version})")
            return existing

        chain = self._install_chain
        if name in chain:
            raise DependencyCycleError(chain + [name])

        chain.append(name)
        try:
            with self.lock_manager.package_lock(name, global_):
                return self._install(name, version, global_, force, dev, arch, os_name)
        except DependencyCycleError:
            raise
        except (CriageError, OSError) as e:
            logger.error(f"Failed to install {name}: {e}")
            raise InstallError(name, e) from e
        finally:
            chain.pop()

    def _install(
        self,
        name: str,
        version: str,
        global_: bool,
        force: bool,
        dev: bool,
        arch: str,
        os_name: str,
    ) -> PackageInfo:
        arch = arch or self.platform.arch
        os_name = os_name or self.platform.os
        label = f"{name} {version}" if version else name
        logger.info(f"Installing {label} for {os_name}/{arch}...")

        resolved = self.client.resolve(
            self.config_manager.get_repositories(), name, version, arch, os_name
        )
        self.config_manager.ensure_directories()

        archive_path = (
            self.config_manager.get_cache_path(name, resolved.version)
            / CACHE_ARCHIVE_NAME
        )
        try:
            if archive_path.exists():
                logger.debug(f"Using cached archive {archive_path}")
            else:
                self.client.download(resolved.download_url, archive_path)

            temp_dir = self.config_manager.get_temp_path(
                f"install_{name}_{int(time.time())}"
            )
            with scoped_directory(temp_dir) as extract_dir:
                self.archive_manager.extract_archive(archive_path, extract_dir)
                manifest = load_local_config(extract_dir)

                self._install_dependencies(manifest, dev)

                if manifest.hooks.pre_install:
                    logger.debug(f"Running pre-install hooks for {name}")
                    execute_hooks(manifest.hooks.pre_install, cwd=extract_dir)

                install_path = self.config_manager.get_install_path(name, global_)
                if force:
                    safe_rmtree(install_path)
                copy_matching(extract_dir, install_path, manifest.files or ["*"])

                info = PackageInfo(
                    name=name,
                    version=manifest.version or resolved.version,
                    description=manifest.description,
                    author=manifest.author,
                    install_path=str(install_path),
                    global_=global_,
                    dependencies=dict(manifest.dependencies),
                    size=directory_size(install_path),
                    files=list(manifest.files),
                    scripts=dict(manifest.scripts),
                )
                self.registry.register(info)
        finally:
            self._discard(archive_path)

        if manifest.hooks.post_install:
            try:
                execute_hooks(manifest.hooks.post_install, cwd=install_path)
            except CriageError as e:
                logger.warning(f"Post-install hook failed for {name}: {e}")

        logger.info(f"Installed {name} {info.version} into {install_path}")
        return info

    def _install_dependencies(self, manifest: PackageManifest, dev: bool) -> None:
        dependencies = dict(manifest.dependencies)
        if dev:
            dependencies.update(manifest.dev_dependencies)

        for dep_name, constraint in dependencies.items():
            if self.registry.get(dep_name) is not None:
                continue
            logger.info(f"Installing dependency {dep_name} ({constraint or '*'})")
            self.install(dep_name)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")

    # ------------------------------------------------------------------
    # Uninstall and update
    # ------------------------------------------------------------------

    def uninstall(self, name: str, global_: bool = False, purge: bool = False) -> None:
        """
        Remove an installed package.

        purge is accepted for command-line compatibility and has no extra
        effect.

        Raises:
            PackageNotInstalledError: Package is not installed in that scope
            UninstallError: Removal of files or record failed
        """
        info = self.registry.get(name, global_)
        if info is None:
            raise PackageNotInstalledError(name)

        try:
            with self.lock_manager.package_lock(name, global_):
                self._uninstall(info)
        except CriageError as e:
            logger.error(f"Failed to uninstall {name}: {e}")
            raise UninstallError(name, e) from e

    def _uninstall(self, info: PackageInfo) -> None:
        install_path = Path(info.install_path)
        logger.info(f"Uninstalling {info.name}...")

        manifest: Optional[PackageManifest] = None
        try:
            manifest = load_local_config(install_path)
        except CriageError as e:
            logger.warning(f"Could not load manifest of {info.name}: {e}")

        if manifest and manifest.hooks.pre_remove:
            try:
                execute_hooks(manifest.hooks.pre_remove, cwd=install_path)
            except CriageError as e:
                logger.warning(f"Pre-remove hook failed for {info.name}: {e}")

        safe_rmtree(install_path)
        self.registry.unregister(info)

        if manifest and manifest.hooks.post_remove:
            try:
                execute_hooks(manifest.hooks.post_remove)
            except CriageError as e:
                logger.warning(f"Post-remove hook failed for {info.name}: {e}")

        logger.info(f"Uninstalled {info.name}")

    def latest_version(self, name: str) -> str:
        """Latest version of a package available for the running platform."""
        return self.client.resolve(
            self.config_manager.get_repositories(),
            name,
            "",
            self.platform.arch,
            self.platform.os,
        ).version

    def update(
        self, name: str, version: str = "", global_: bool = False
    ) -> PackageInfo:
        """
        Update an installed package to version, or to its latest version.

        Raises:
            PackageNotInstalledError: Package is not installed in that scope
            UpdateError: Resolution or reinstall failed
        """
        info = self.registry.get(name, global_)
        if info is None:
            raise PackageNotInstalledError(name)

        try:
            latest = version or self.latest_version(name)
            if latest == info.version:
                logger.info(f"Package {name} is up to date ({info.version})")
                return info

            logger.info(f"Updating {name} {info.version} -> {latest}")
            return self.install(name, latest, global_=info.global_, force=True)
        except CriageError as e:
            raise UpdateError(name, e) from e

    def update_all(self) -> Dict[str, CriageError]:
        """
        Update every local-scope package, continuing past failures.

        Returns:
            Mapping of package name to the error for packages that failed
        """
        failures: Dict[str, CriageError] = {}
        for info in self.registry.list(global_=False):
            try:
                self.update(info.name)
            except CriageError as e:
                logger.warning(f"Failed to update {info.name}: {e}")
                failures[info.name] = e
        return failures

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search(self, query: str) -> List[SearchResult]:
        """Search every enabled repository; results are ordered by score."""
        repositories = sorted(
            (r for r in self.config_manager.get_repositories() if r.enabled),
            key=lambda r: r.priority,
            reverse=True,
        )

        results: List[SearchResult] = []
        for repository in repositories:
            try:
                results.extend(self.client.search(repository, query))
            except RegistryError as e:
                logger.warning(f"Search failed in repository {repository.name}: {e}")

        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def list_packages(
        self, global_: bool = False, outdated: bool = False
    ) -> List[PackageInfo]:
        return self.registry.list(global_, outdated, self.latest_version)

    def get_package_info(self, name: str, global_: bool = False) -> PackageInfo:
        info = self.registry.get(name, global_)
        if info is None:
            raise PackageNotInstalledError(name)
        return info

    # ------------------------------------------------------------------
    # Authoring: create, build, publish
    # ------------------------------------------------------------------

    def create_package(
        self,
        name: str,
        template: str = "basic",
        author: str = "",
        description: str = "",
        parent_dir: Optional[Union[str, Path]] = None,
    ) -> Path:
        return create_package(name, template, author, description, parent_dir)

    def _build_manifest(
        self,
        project_dir: Path,
        manifest: PackageManifest,
        fmt: str,
        compression_level: int,
    ) -> BuildManifest:
        try:
            return load_build_config(project_dir)
        except ManifestNotFoundError:
            logger.debug("No build manifest, using defaults")
        return BuildManifest(
            name=manifest.name,
            version=manifest.version,
            build_script=DEFAULT_BUILD_SCRIPT,
            output_dir=DEFAULT_OUTPUT_DIR,
            include_files=list(manifest.files),
            exclude_files=list(manifest.exclude),
            compression=CompressionConfig(format=fmt, level=compression_level),
            targets=[BuildTarget(os=self.platform.os, arch=self.platform.arch)],
        )

    def build(
        self,
        output_path: Optional[Union[str, Path]] = None,
        fmt: str = ArchiveFormat.TAR_ZST.value,
        compression_level: int = COMPRESSION_NORMAL,
        project_dir: Optional[Union[str, Path]] = None,
    ) -> Path:
        """
        Build the package in project_dir into an archive with embedded metadata.

        Archives from earlier runs (``*.criage`` and ``<name>-*.tar.zst``) are
        never packed.

        Args:
            output_path: Archive to create (default: ``<name>-<version>.criage``)
            fmt: Archive format
            compression_level: Compression level
            project_dir: Package directory (default: current directory)

        Returns:
            Path to the created archive

        Raises:
            BuildError: Missing manifest, failing build script or archive error
        """
        project_dir = Path(project_dir or Path.cwd())
        try:
            manifest = load_local_config(project_dir)
        except CriageError as e:
            logger.error(f"Failed to load manifest from {project_dir}: {e}")
            raise BuildError(project_dir.name, e) from e

        try:
            archive_format = ArchiveFormat.parse(fmt)
            build_manifest = self._build_manifest(
                project_dir, manifest, archive_format.value, compression_level
            )

            if build_manifest.build_script:
                run_build_script(
                    build_manifest.build_script, build_manifest.build_env, project_dir
                )

            if output_path is None:
                output_path = f"{manifest.name}-{manifest.version}.criage"
            output_path = project_dir / output_path

            metadata = ArchiveMetadata(
                package_manifest=manifest.to_dict(),
                build_manifest=build_manifest.to_dict(),
                compression_type=archive_format.value,
            )
            files = self.archive_manager.create_archive_with_metadata(
                project_dir,
                output_path,
                archive_format,
                build_manifest.include_files,
                build_manifest.exclude_files
                + [p.format(name=manifest.name) for p in BUILD_ARTIFACT_PATTERNS],
                metadata,
                compression_level,
            )
        except CriageError as e:
            logger.error(f"Failed to build {manifest.name}: {e}")
            raise BuildError(manifest.name, e) from e

        logger.info(f"Built {output_path} ({len(files)} files)")
        return output_path

    def default_publish_target(self) -> Tuple[str, str]:
        """URL and token of the highest-priority enabled repository."""
        repositories = [r for r in self.config_manager.get_repositories() if r.enabled]
        if not repositories:
            raise PublishError("package", "no enabled repositories configured")
        target = max(repositories, key=lambda r: r.priority)
        return target.url, target.auth_token

    def publish(
        self,
        registry_url: str,
        token: str = "",
        project_dir: Optional[Union[str, Path]] = None,
    ) -> ApiResponse:
        """
        Build the package as tar.zst and upload it.

        The intermediate archive is always removed.

        Raises:
            PublishError: Build or upload failed
        """
        project_dir = Path(project_dir or Path.cwd())
        try:
            manifest = load_local_config(project_dir)
        except CriageError as e:
            raise PublishError(project_dir.name, e) from e

        archive_path = project_dir / f"{manifest.name}-{manifest.version}.tar.zst"
        try:
            self.build(
                archive_path,
                ArchiveFormat.TAR_ZST.value,
                COMPRESSION_NORMAL,
                project_dir,
            )
            logger.info(f"Publishing {manifest.name} {manifest.version} to {registry_url}")
            response = self.client.upload(registry_url, archive_path, token)
        except CriageError as e:
            logger.error(f"Failed to publish {manifest.name}: {e}")
            raise PublishError(manifest.name, e) from e
        finally:
            self._discard(archive_path)

        logger.info(f"Published {manifest.name} {manifest.version}")
        return response

    def archive_metadata(self, archive_path: Union[str, Path]) -> ArchiveMetadata:
        return self.archive_manager.extract_metadata_from_archive(archive_path)

    # ------------------------------------------------------------------
    # Repository administration
    # ------------------------------------------------------------------

    def repository_info(self, registry_url: str) -> ServerInfo:
        return self.client.server_info(registry_url)

    def repository_stats(self, registry_url: str) -> Statistics:
        return self.client.stats(registry_url)

    def refresh_repository(self, registry_url: str, token: str = "") -> ApiResponse:
        return self.client.refresh(registry_url, token)

    def repository_packages(
        self, registry_url: str, page: int = 1, limit: int = 20, token: str = ""
    ) -> PackageListResponse:
        return self.client.list_packages(registry_url, page, limit, token)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the client, rate limiter and archive contexts."""
        if self._owns_client:
            self.client.close()
        if self.rate_limiter is not None:
            self.rate_limiter.close()
        if self._owns_archive_manager:
            self.archive_manager.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


__all__ = ["PackageManager", "REQUESTS_PER_SECOND", "CACHE_ARCHIVE_NAME"]
