"""Shared test fixtures."""

import os

import logfire
import pytest

from forge_toolchain.core.config import ToolchainSettings
from forge_toolchain.services.registry import ToolchainRegistry

logfire.configure(send_to_logfire=False, console=False)


class FakeWhich:
    """``shutil.which`` stand-in backed by a set of (directory, name) pairs."""

    def __init__(self, available=(), error=None):
        self.available = {(os.path.normpath(d), n) for d, n in available}
        self.error = error
        self.calls = []

    def __call__(self, name, path=None):
        self.calls.append((name, path))
        if self.error is not None:
            raise self.error
        for directory in (path or "").split(os.pathsep):
            if directory and (os.path.normpath(directory), name) in self.available:
                return os.path.join(directory, name)
        return None

    def names(self):
        return [name for name, _ in self.calls]


class FakeListdir:
    def __init__(self, tree=None):
        self.tree = {os.path.normpath(k): v for k, v in (tree or {}).items()}
        self.calls = []

    def __call__(self, folder):
        self.calls.append(folder)
        try:
            return list(self.tree[os.path.normpath(folder)])
        except KeyError:
            raise FileNotFoundError(folder)


@pytest.fixture
def make_settings(tmp_path):
    def _make(platform="linux", environ=None, config=None):
        return ToolchainSettings.from_config(
            config,
            project_dir=tmp_path,
            environ={"PATH": "/usr/bin"} if environ is None else environ,
            platform=platform,
        )

    return _make


@pytest.fixture
def make_registry(make_settings):
    def _make(which=None, listdir=None, **settings_kwargs):
        return ToolchainRegistry(
            settings=make_settings(**settings_kwargs),
            which=which or FakeWhich(),
            listdir=listdir or FakeListdir(),
        )

    return _make
