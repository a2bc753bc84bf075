"""Adversarial tests — an update run that hits anything bad changes nothing.

For each failure the live binaries, web root and installed-state file
must be byte-identical to before the run, and no service is touched.
"""

from __future__ import annotations

import gzip
import io
import json
import tarfile
from pathlib import Path

import pytest

from viewtube_release.core.signer import sign_artifact
from viewtube_release.models.releases import ReleaseAsset, ReleaseInfo
from viewtube_release.models.update import UpdateState

REPO = "Pingasmaster/newtube"


def _publish_raw(tmp_path: Path, release_index, keypair, tag: str, payload: bytes) -> None:
    """Sign arbitrary bytes as a source archive and publish them."""
    dist = tmp_path / f"raw-{tag}"
    dist.mkdir()
    archive = dist / f"viewtube-src-{tag}.tar.gz"
    archive.write_bytes(payload)
    sig = dist / f"viewtube-src-{tag}.tar.gz.sig"
    sign_artifact(archive, tag, keypair, sig)
    release_index.publish(REPO, tag, [archive, sig])


def _tar_gz(members: list[tuple[tarfile.TarInfo, bytes | None]]) -> bytes:
    buf = io.BytesIO()
    with gzip.GzipFile(fileobj=buf, mode="wb", mtime=0) as gz:
        with tarfile.open(fileobj=gz, mode="w") as tar:
            for info, data in members:
                if data is None:
                    tar.addfile(info)
                else:
                    info.size = len(data)
                    tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class TestFailClosed:
    def _assert_untouched(self, result, host, before, services, stage: UpdateState):
        assert result.state == UpdateState.FAILED
        assert result.failed_stage == stage
        assert host.snapshot() == before
        assert services.calls == []

    def test_tampered_download(self, tmp_path, publish_release, make_applier, host, services):
        archive, _ = publish_release("v0.2.0")
        data = bytearray(archive.read_bytes())
        data[len(data) // 2] ^= 0xFF
        archive.write_bytes(bytes(data))

        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.VERIFYING)
        assert result.error_type == "ChecksumMismatchError"

    def test_truncated_archive_with_stale_signature(
        self, publish_release, make_applier, host, services, fake_builder
    ):
        archive, _ = publish_release("v0.2.0")
        archive.write_bytes(archive.read_bytes()[: archive.stat().st_size // 2])

        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.VERIFYING)
        assert result.error_type == "ChecksumMismatchError"
        assert not any(t.to_state == UpdateState.UNPACKING for t in result.transitions)
        assert fake_builder.built == []
        assert list(host.scratch.iterdir()) == []

    def test_forged_signature(self, publish_release, make_applier, host, services, other_keypair):
        archive, sig = publish_release("v0.2.0")
        sign_artifact(archive, "v0.2.0", other_keypair, sig)

        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.VERIFYING)
        assert result.error_type == "SignatureInvalidError"

    def test_unknown_signature_format(self, publish_release, make_applier, host, services):
        _, sig = publish_release("v0.2.0")
        data = json.loads(sig.read_text())
        data["format"] = 99
        sig.write_text(json.dumps(data))

        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.VERIFYING)
        assert result.error_type == "UnsupportedFormatError"

    def test_no_trusted_key(self, publish_release, make_applier, host, services, fake_builder):
        publish_release("v0.2.0")
        before = host.snapshot()
        result = make_applier(trusted_key=None).run()
        self._assert_untouched(result, host, before, services, UpdateState.VERIFYING)
        assert fake_builder.built == []

    def test_signed_but_truncated_archive(
        self, tmp_path, release_index, keypair, make_applier, host, services
    ):
        """Validly signed garbage is caught at unpack, still before install."""
        _publish_raw(tmp_path, release_index, keypair, "v0.2.0", b"\x1f\x8b\x08\x00trunc")
        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.UNPACKING)
        assert result.error_type == "ArchiveLayoutError"

    @pytest.mark.parametrize(
        "name",
        ["source/../../../etc/cron.d/evil", "/etc/cron.d/evil", "bundle/bin/backend"],
    )
    def test_signed_archive_with_unsafe_paths(
        self, tmp_path, release_index, keypair, make_applier, host, services, name: str
    ):
        payload = _tar_gz([(tarfile.TarInfo(name), b"* * * * * root sh\n")])
        _publish_raw(tmp_path, release_index, keypair, "v0.2.0", payload)
        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.UNPACKING)
        assert not (tmp_path / "etc").exists()

    def test_signed_archive_with_symlink(
        self, tmp_path, release_index, keypair, make_applier, host, services
    ):
        link = tarfile.TarInfo("source/index.html")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/shadow"
        _publish_raw(tmp_path, release_index, keypair, "v0.2.0", _tar_gz([(link, None)]))
        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.UNPACKING)

    def test_sidecar_missing_from_release(
        self, tmp_path, release_index, make_applier, host, services
    ):
        archive = tmp_path / "viewtube-src-v0.2.0.tar.gz"
        archive.write_bytes(b"unsigned")
        release_index.publish(REPO, "v0.2.0", [archive])
        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.DOWNLOADING)

    @pytest.mark.parametrize("tag", ["x/../../../escaped", "v0.2.0/../../../../tmp/x"])
    def test_tag_with_path_segments(
        self, tmp_path, publish_release, release_index, make_applier, host, services, tag
    ):
        """A hostile index names the release so its assets would land outside scratch."""
        archive, sig = publish_release("v0.2.0")
        assets = []
        for path, name in (
            (archive, f"viewtube-src-{tag}.tar.gz"),
            (sig, f"viewtube-src-{tag}.tar.gz.sig"),
        ):
            url = f"https://example.invalid/hostile/{path.name}"
            release_index.files[url] = path
            assets.append(ReleaseAsset(name=name, download_url=url))
        release_index.releases[REPO] = ReleaseInfo(tag=tag, assets=assets)

        before = host.snapshot()
        result = make_applier().run()
        self._assert_untouched(result, host, before, services, UpdateState.DOWNLOADING)
        assert result.error_type == "ReleaseNotFoundError"
        assert release_index.downloads == []
        assert not list(tmp_path.rglob("escaped*"))
        assert list(host.scratch.iterdir()) == []
