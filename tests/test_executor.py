"""Tests for release actions."""

from pathlib import Path

import pytest

from release_provider import executor
from release_provider.chart import Chart
from release_provider.exceptions import HelmException, InputException
from release_provider.release_store import InMemoryReleaseStore
from release_provider.spec import ReleaseSpec


@pytest.fixture(name="chart")
def chart_fixture(tmp_path: Path) -> Chart:
    return Chart(name="app", version="1.0.0", path=tmp_path, app_version="2.0")


@pytest.fixture(name="spec")
def spec_fixture() -> ReleaseSpec:
    return ReleaseSpec(chart="app", name="r1", namespace="ns")


def test_install_options(spec: ReleaseSpec) -> None:
    """Test policy flags are passed through to the install options."""
    spec.atomic = True
    spec.timeout = 120
    spec.disable_webhooks = True
    options = executor.install_options(spec, dry_run=True)
    assert options.release_name == "r1"
    assert options.namespace == "ns"
    assert options.atomic
    assert options.wait
    assert options.dry_run
    assert options.disable_hooks
    assert options.timeout == 120


def test_upgrade_options(spec: ReleaseSpec) -> None:
    """Test upgrade-only flags are passed through."""
    spec.reuse_values = True
    spec.max_history = 5
    spec.force_update = True
    options = executor.upgrade_options(spec)
    assert options.reuse_values
    assert options.max_history == 5
    assert options.force
    assert not options.dry_run


def test_options_require_name() -> None:
    """Test an action needs a release name."""
    with pytest.raises(InputException, match="Release name is required"):
        executor.install_options(ReleaseSpec(chart="app"))


async def test_install(
    release_store: InMemoryReleaseStore, chart: Chart, spec: ReleaseSpec
) -> None:
    """Test a successful install."""
    result = await executor.install(release_store, chart, {"a": 1}, spec)
    assert isinstance(result, executor.ActionOk)
    assert result.record.revision == 1
    assert result.record.status == "deployed"
    assert result.record.config == {"a": 1}
    assert await executor.release_exists(release_store, "r1", "ns")


async def test_install_dry_run(
    release_store: InMemoryReleaseStore, chart: Chart, spec: ReleaseSpec
) -> None:
    """Test a dry run records nothing."""
    result = await executor.install(release_store, chart, {}, spec, dry_run=True)
    assert isinstance(result, executor.ActionOk)
    assert result.record.status == "pending-install"
    assert not await executor.release_exists(release_store, "r1", "ns")


async def test_install_failure(
    release_store: InMemoryReleaseStore, chart: Chart, spec: ReleaseSpec
) -> None:
    """Test a failed install that left nothing behind."""
    release_store.fail_next(HelmException("connection refused"))
    result = await executor.install(release_store, chart, {}, spec)
    assert isinstance(result, executor.ActionError)
    assert "connection refused" in str(result.cause)


async def test_install_partial_failure(
    release_store: InMemoryReleaseStore, chart: Chart, spec: ReleaseSpec
) -> None:
    """Test a failed install that still recorded the release."""
    release_store.fail_next(HelmException("timed out waiting"), leave_record=True)
    result = await executor.install(release_store, chart, {}, spec)
    assert isinstance(result, executor.ActionPartialFailure)
    assert result.record.status == "failed"
    assert result.record.name == "r1"
    assert "timed out waiting" in str(result.cause)


async def test_upgrade(
    release_store: InMemoryReleaseStore, chart: Chart, spec: ReleaseSpec
) -> None:
    """Test upgrading to a new revision."""
    await executor.install(release_store, chart, {"a": 1}, spec)
    result = await executor.upgrade(release_store, chart, {"a": 2}, spec)
    assert isinstance(result, executor.ActionOk)
    assert result.record.revision == 2
    assert result.record.config == {"a": 2}
    assert [r.status for r in release_store.history("r1", "ns")] == [
        "superseded",
        "deployed",
    ]


async def test_upgrade_partial_failure(
    release_store: InMemoryReleaseStore, chart: Chart, spec: ReleaseSpec
) -> None:
    """Test a failed upgrade tracks the latest revision."""
    await executor.install(release_store, chart, {"a": 1}, spec)
    release_store.fail_next(HelmException("hook failed"), leave_record=True)
    result = await executor.upgrade(release_store, chart, {"a": 2}, spec)
    assert isinstance(result, executor.ActionPartialFailure)
    assert result.record.revision == 2
    assert result.record.status == "failed"


async def test_upgrade_missing_release(
    release_store: InMemoryReleaseStore, chart: Chart, spec: ReleaseSpec
) -> None:
    """Test upgrading a release that does not exist."""
    result = await executor.upgrade(release_store, chart, {}, spec)
    assert isinstance(result, executor.ActionError)
    assert "has no deployed releases" in str(result.cause)


async def test_uninstall(
    release_store: InMemoryReleaseStore, chart: Chart, spec: ReleaseSpec
) -> None:
    """Test uninstalling is idempotent."""
    await executor.install(release_store, chart, {}, spec)
    await executor.uninstall(release_store, spec)
    assert not await executor.release_exists(release_store, "r1", "ns")
    await executor.uninstall(release_store, spec)
    assert release_store.calls == [
        "install ns/r1",
        "uninstall ns/r1",
        "get ns/r1",
        "uninstall ns/r1",
    ]


@pytest.mark.parametrize(
    ("flag", "message"),
    [
        ("disable_crd_hooks", "Disabling CRD hooks is not supported"),
        ("lint", "Linting charts is not supported"),
    ],
)
def test_unsupported_options_warn(
    spec: ReleaseSpec, flag: str, message: str, caplog: pytest.LogCaptureFixture
) -> None:
    """Test flags without a helm option are ignored with a warning."""
    setattr(spec, flag, True)
    install = executor.install_options(spec)
    upgrade = executor.upgrade_options(spec)
    warnings = [r.getMessage() for r in caplog.records if r.levelname == "WARNING"]
    assert len([w for w in warnings if message in w]) == 2
    assert install.release_name == upgrade.release_name == "r1"


def test_supported_options_do_not_warn(
    spec: ReleaseSpec, caplog: pytest.LogCaptureFixture
) -> None:
    """Test no warning is logged for the default flags."""
    executor.install_options(spec)
    executor.upgrade_options(spec)
    assert not [r for r in caplog.records if r.levelname == "WARNING"]
