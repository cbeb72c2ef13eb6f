"""
Shared fixtures: a fake oc-mirror executable and operation storage.
"""

import stat

import pytest

from app.operations.store import OperationStore

FAKE_OC_MIRROR = """#!/bin/sh
if [ "$1" = "version" ]; then
  echo 'Client Version: version.Info{Major:"", Minor:"", GitVersion:"4.18.0-202503121435.p0.gd6d1a8b.assembly.stream.el9-d6d1a8b", GoVersion:"go1.22.9"}'
  exit 0
fi
# Behaviour is selected by the config file name passed after --config
echo "fake oc-mirror starting"
case "$(basename "$3")" in
  fail*) echo "error: unable to connect to registry"; exit 3 ;;
  marker*) echo "[ERROR] : manifest unknown"; exit 0 ;;
  graceful*) trap 'echo "mirror complete"; exit 0' TERM; sleep 30 ;;
  stubborn*) trap '' TERM; exec sleep 30 ;;
  slow*) exec sleep 30 ;;
esac
echo "mirror complete"
exit 0
"""


@pytest.fixture
def fake_oc_mirror(tmp_path):
    """Path to an executable shell script standing in for oc-mirror."""
    script = tmp_path / "bin" / "oc-mirror"
    script.parent.mkdir()
    script.write_text(FAKE_OC_MIRROR, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def configs_dir(tmp_path):
    """Configs directory holding one config per fake behaviour."""
    path = tmp_path / "data" / "configs"
    path.mkdir(parents=True)
    for name in ("ok.yaml", "fail.yaml", "marker.yaml", "graceful.yaml", "slow.yaml", "stubborn.yaml"):
        (path / name).write_text("kind: ImageSetConfiguration\napiVersion: mirror.openshift.io/v2alpha1\n",
                                 encoding="utf-8")
    return path


@pytest.fixture
def operation_store(tmp_path):
    return OperationStore(tmp_path / "data" / "operations", tmp_path / "data" / "logs")
