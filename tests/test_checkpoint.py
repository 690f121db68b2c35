"""Tests for building release checkpoints."""

import json
from pathlib import Path

import pytest

from release_provider.chart import Chart
from release_provider.checkpoint import (
    INPUTS_KEY,
    checkpoint_release,
    convert_manifest_to_json,
    parse_checkpoint,
    redact_manifest,
    sensitive_values,
    set_release_attributes,
)
from release_provider.exceptions import InputException
from release_provider.properties import Secret
from release_provider.release_store import ReleaseRecord
from release_provider.release_store.in_memory import render_values_config_map
from release_provider.spec import decode_release
from release_provider.values import SENSITIVE_VALUE

MANIFEST = """---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
  namespace: apps
spec:
  replicas: 2
---
apiVersion: v1
kind: Namespace
metadata:
  name: apps
"""


def _news() -> dict:
    return {
        "releaseSpec": {
            "chart": "app",
            "name": "r1",
            "namespace": "ns",
            "values": ["a:\n  b:\n    d: visible\n"],
            "set": [{"name": "a.b.c", "value": Secret("hunter2")}],
        }
    }


def _record(config: dict) -> ReleaseRecord:
    chart = Chart(name="app", version="1.0.0", path=Path("app"))
    return ReleaseRecord(
        name="r1",
        namespace="ns",
        revision=1,
        status="deployed",
        chart_name="app",
        chart_version="1.0.0",
        config=config,
        manifest=render_values_config_map(chart, "r1", "ns", config),
    )


def test_sensitive_values() -> None:
    """Test collecting secret overrides and secret values documents."""
    news = {
        "releaseSpec": {
            "values": ["plain: 1\n", Secret("token: abc\nnested:\n  key: xyz\n")],
            "set": [
                {"name": "a.b", "value": "visible"},
                Secret({"name": "c", "value": "s1"}),
                {"name": "d", "value": Secret("s2")},
            ],
        }
    }
    result = sensitive_values(news)
    assert result.paths == ["c", "d", "token", "nested.key"]
    assert result.raw == ["s1", "s2", "abc", "xyz"]


def test_sensitive_values_all_secret() -> None:
    """Test a secret override list makes every override sensitive."""
    news = {"releaseSpec": {"set": Secret([{"name": "a", "value": "1"}])}}
    assert sensitive_values(news).paths == ["a"]


def test_convert_manifest_to_json() -> None:
    """Test manifest objects are keyed by namespace, kind and name."""
    objects = convert_manifest_to_json(MANIFEST)
    assert list(objects) == [
        "apps/deployment.apps/apps/v1/web",
        "namespace/v1/apps",
    ]
    assert objects["apps/deployment.apps/apps/v1/web"]["spec"] == {"replicas": 2}


def test_convert_manifest_invalid() -> None:
    """Test an unparseable manifest is an input error."""
    with pytest.raises(InputException, match="Unable to parse release manifest"):
        convert_manifest_to_json("a: [b\n")


def test_redact_manifest() -> None:
    """Test sensitive values are replaced in manifest strings."""
    manifest = {
        "data": {"config": "password: hunter2\nuser: admin\n", "port": 5432},
        "list": ["hunter2x", "other"],
    }
    assert redact_manifest(manifest, ["hunter2", 5432, "", None]) == {
        "data": {
            "config": f"password: {SENSITIVE_VALUE}\nuser: admin\n",
            "port": SENSITIVE_VALUE,
        },
        "list": [f"{SENSITIVE_VALUE}x", "other"],
    }


def test_set_release_attributes_redacts() -> None:
    """Test the secret leaf is redacted while its siblings stay visible."""
    news = _news()
    release, _ = decode_release(news)
    config = {"a": {"b": {"c": "hunter2", "d": "visible"}}}
    set_release_attributes(release, _record(config), news)

    status = release.status
    assert status.name == "r1"
    assert status.revision == 1
    assert status.status == "deployed"
    assert json.loads(status.values or "") == {
        "a": {"b": {"c": SENSITIVE_VALUE, "d": "visible"}}
    }
    assert "hunter2" not in (status.manifest or "")
    assert "visible" in (status.manifest or "")
    # The record itself is not modified
    assert config["a"]["b"]["c"] == "hunter2"


def test_checkpoint_release() -> None:
    """Test the checkpoint holds the live release and the frozen inputs."""
    news = _news()
    inputs, _ = decode_release(news)
    live, _ = decode_release(news)
    set_release_attributes(
        live, _record({"a": {"b": {"c": "hunter2", "d": "visible"}}}), news
    )
    checkpoint = checkpoint_release(inputs, live, news)

    assert checkpoint["status"]["revision"] == 1
    assert checkpoint[INPUTS_KEY]["releaseSpec"]["set"] == [
        {"name": "a.b.c", "value": Secret("hunter2")}
    ]
    assert checkpoint["releaseSpec"]["set"] == [
        {"name": "a.b.c", "value": Secret("hunter2")}
    ]
    assert "status" not in checkpoint[INPUTS_KEY]

    frozen, observed = parse_checkpoint(checkpoint)
    assert frozen == checkpoint[INPUTS_KEY]
    assert INPUTS_KEY not in observed
    assert observed["status"] == checkpoint["status"]


def test_parse_checkpoint_missing_inputs() -> None:
    """Test a checkpoint must carry the frozen inputs."""
    with pytest.raises(InputException, match="missing __inputs"):
        parse_checkpoint({"releaseSpec": {"chart": "app"}})
