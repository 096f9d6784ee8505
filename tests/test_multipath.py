import subprocess
from unittest import mock

import pytest

from powervs_csi import multipath
from powervs_csi.multipath import MultipathError


def make_runner(responses, calls):
    def fake_run(cmd, **kwargs):
        calls.append(tuple(cmd))
        code, out = responses.get(tuple(cmd), (0, ""))
        return subprocess.CompletedProcess(cmd, code, stdout=out)

    return fake_run


@pytest.fixture
def sysfs(tmp_path, monkeypatch):
    monkeypatch.setattr(multipath, "SYS_BLOCK_PATH", str(tmp_path))

    def add(dm, uuid, name):
        base = tmp_path / dm / "dm"
        base.mkdir(parents=True)
        (base / "uuid").write_text(uuid + "\n")
        (base / "name").write_text(name + "\n")

    return add


def test_find_string_submatch_map_major_minor():
    result = multipath.find_string_submatch_map("mpathb\t(253, 3)", multipath.MAJOR_MINOR_REGEXP)
    assert result["Major"] == "253"
    assert result["Minor"] == "3"


def test_find_string_submatch_map_no_match():
    assert multipath.find_string_submatch_map("nothing here", multipath.MAJOR_MINOR_REGEXP) == {}


def test_read_first_line(tmp_path):
    path = tmp_path / "f"
    path.write_bytes(b"first\r\nsecond\n")
    assert multipath.read_first_line(str(path)) == "first"


def test_read_first_line_empty_file(tmp_path):
    path = tmp_path / "empty"
    path.write_bytes(b"")
    assert multipath.read_first_line(str(path)) == ""


def test_read_first_line_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        multipath.read_first_line(str(tmp_path / "missing"))


def test_sysfs_name_and_uuid(sysfs):
    sysfs("dm-5", "mpath-3feedface", "mpathq")
    assert multipath.get_mpath_name("dm-5") == "mpathq"
    assert multipath.get_uuid("dm-5") == "mpath-3feedface"


def test_delete_sd_device_writes_one(tmp_path):
    path = tmp_path / "delete"
    multipath.delete_sd_device(str(path))
    assert path.read_text() == "1"


def test_delete_sd_device_error(tmp_path):
    with pytest.raises(MultipathError, match="error writing to file"):
        multipath.delete_sd_device(str(tmp_path / "nodir" / "delete"))


def test_get_paths_count_counts_active_paths():
    status = "0 41943040 multipath 2 0 0 0 1 1 A 0 2 0 8:16 A 0 0 1 8:32 A 0 0 1\n"
    calls = []
    responses = {("dmsetup", "status", "--target", "multipath", "mpathb"): (0, status)}
    with mock.patch("subprocess.run", make_runner(responses, calls)):
        assert multipath.get_paths_count("mpathb") == 2
    assert calls == [("dmsetup", "status", "--target", "multipath", "mpathb")]


def test_get_paths_count_failed_path_not_counted():
    status = "0 100 multipath 2 0 0 0 1 1 E 0 1 0 8:16 F 1 0 1\n"
    responses = {("dmsetup", "status", "--target", "multipath", "mpathb"): (0, status)}
    with mock.patch("subprocess.run", make_runner(responses, [])):
        assert multipath.get_paths_count("mpathb") == 0


def test_get_paths_count_command_failed():
    responses = {
        ("dmsetup", "status", "--target", "multipath", "mpathx"): (0, "Command failed.\n")
    }
    with mock.patch("subprocess.run", make_runner(responses, [])):
        with pytest.raises(MultipathError):
            multipath.get_paths_count("mpathx")


def test_get_paths_count_nonzero_exit():
    responses = {("dmsetup", "status", "--target", "multipath", "mpathx"): (1, "boom")}
    with mock.patch("subprocess.run", make_runner(responses, [])):
        with pytest.raises(MultipathError):
            multipath.get_paths_count("mpathx")


@pytest.mark.parametrize(
    "msg, expected",
    [("", True), ("Command failed", True), ("0 1 multipath", False)],
)
def test_is_dmsetup_status_error(msg, expected):
    assert multipath.is_dmsetup_status_error(msg) is expected


@pytest.mark.parametrize(
    "msg, expected",
    [("timeout receiving", True), ("error receiving packet", True), ("all good", False)],
)
def test_is_multipath_timeout_error(msg, expected):
    assert multipath.is_multipath_timeout_error(msg) is expected


@pytest.mark.parametrize(
    "msg, expected",
    [
        ("", False),
        ("ok", False),
        ("No such device or address", False),
        ("Device or resource busy", True),
    ],
)
def test_is_dmsetup_remove_error(msg, expected):
    assert multipath.is_dmsetup_remove_error(msg) is expected


def test_disable_queuing_missing_device():
    responses = {
        ("dmsetup", "message", "mpathz", "0", "fail_if_no_path"): (0, "No such device or address")
    }
    with mock.patch("subprocess.run", make_runner(responses, [])):
        with pytest.raises(MultipathError, match="cannot disable queuing"):
            multipath.multipath_disable_queuing("mpathz")


def test_disable_queuing_nonzero_exit():
    responses = {("dmsetup", "message", "mpathz", "0", "fail_if_no_path"): (1, "")}
    with mock.patch("subprocess.run", make_runner(responses, [])):
        with pytest.raises(MultipathError):
            multipath.multipath_disable_queuing("mpathz")


def test_remove_skips_root_map():
    calls = []
    with mock.patch("subprocess.run", make_runner({}, calls)):
        result = multipath.multipath_remove_dm_device("/dev/mapper/mpatha")
    assert result is None
    assert calls == []


def test_remove_runs_disable_then_remove():
    calls = []
    with mock.patch("subprocess.run", make_runner({}, calls)):
        result = multipath.multipath_remove_dm_device("mpathz")
    assert result is None
    assert calls == [
        ("dmsetup", "message", "mpathz", "0", "fail_if_no_path"),
        ("dmsetup", "remove", "--force", "mpathz"),
    ]


def test_remove_reports_error_output():
    responses = {("dmsetup", "remove", "--force", "mpathz"): (0, "Device or resource busy")}
    with mock.patch("subprocess.run", make_runner(responses, [])):
        with pytest.raises(MultipathError, match="failed to remove device map"):
            multipath.multipath_remove_dm_device("mpathz")


def test_remove_nonzero_exit():
    responses = {("dmsetup", "remove", "--force", "mpathz"): (1, "")}
    with mock.patch("subprocess.run", make_runner(responses, [])):
        with pytest.raises(MultipathError, match="failed to remove multipath map"):
            multipath.multipath_remove_dm_device("mpathz")


def test_cleanup_orphan_paths_deletes_orphans(tmp_path, monkeypatch):
    template = str(tmp_path) + "/{host}-{channel}-{target}-{lun}"
    monkeypatch.setattr(multipath, "SCSI_DEVICE_DELETE_PATH", template)
    output = (
        "3abc sdb active 1:0:0:2 running ready serial vendor mpathb\n"
        "[orphan] sdc undef 2:0:1:5 running ready serial vendor [orphan]\n"
    )
    responses = {(multipath.MULTIPATHD, *multipath.SHOW_PATHS_FORMAT): (0, output)}
    with mock.patch("subprocess.run", make_runner(responses, [])):
        deleted = multipath.cleanup_orphan_paths()
    expected = template.format(host="2", channel="0", target="1", lun="5")
    assert deleted == [expected]
    assert (tmp_path / "2-0-1-5").read_text() == "1"
    assert not (tmp_path / "1-0-0-2").exists()


def test_cleanup_orphan_paths_timeout_output(tmp_path, monkeypatch):
    template = str(tmp_path) + "/{host}-{channel}-{target}-{lun}"
    monkeypatch.setattr(multipath, "SCSI_DEVICE_DELETE_PATH", template)
    output = "timeout x 2:0:1:5 orphan\n"
    responses = {(multipath.MULTIPATHD, *multipath.SHOW_PATHS_FORMAT): (0, output)}
    with mock.patch("subprocess.run", make_runner(responses, [])):
        assert multipath.cleanup_orphan_paths() == []
    assert not (tmp_path / "2-0-1-5").exists()


def test_cleanup_orphan_paths_command_failure():
    responses = {(multipath.MULTIPATHD, *multipath.SHOW_PATHS_FORMAT): (1, "x 2:0:1:5 orphan")}
    with mock.patch("subprocess.run", make_runner(responses, [])):
        assert multipath.cleanup_orphan_paths() == []