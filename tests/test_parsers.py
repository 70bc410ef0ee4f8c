"""Tests for command output parsers."""

import pytest

from device_pulse.errors import ParseError
from device_pulse.parsers import (
    PS_LAYOUT,
    CpuCounterSample,
    layout_from_header,
    parse_df,
    parse_df_table,
    parse_meminfo,
    parse_net_dev,
    parse_proc_stat,
    parse_process_table,
    parse_size_kb,
)
from tests.conftest import DF_DATA, MEMINFO, NET_DEV, PROC_STAT, PS_OUTPUT


class TestParseProcStat:
    """Tests for the aggregate cpu line."""

    def test_full_line(self) -> None:
        sample = parse_proc_stat(PROC_STAT)
        assert sample == CpuCounterSample(1000, 50, 300, 8000, 100, 20, 30)
        assert sample.total == 9500

    def test_per_core_lines_ignored(self) -> None:
        """Only the line whose first token is exactly 'cpu' counts."""
        text = "cpu0 1 1 1 1\ncpu  10 20 30 40\n"
        assert parse_proc_stat(text) == CpuCounterSample(10, 20, 30, 40)

    def test_old_kernel_four_fields(self) -> None:
        sample = parse_proc_stat("cpu 10 20 30 40\n")
        assert sample.iowait == 0
        assert sample.total == 100

    def test_pure(self) -> None:
        """Same text, same result."""
        assert parse_proc_stat(PROC_STAT) == parse_proc_stat(PROC_STAT)

    def test_too_few_counters(self) -> None:
        with pytest.raises(ParseError):
            parse_proc_stat("cpu 10 20 30\n")

    def test_no_cpu_line(self) -> None:
        with pytest.raises(ParseError):
            parse_proc_stat("intr 1 2 3\nctxt 4\n")

    def test_empty(self) -> None:
        with pytest.raises(ParseError):
            parse_proc_stat("")

    def test_parse_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_proc_stat("garbage")


class TestParseMeminfo:
    """Tests for /proc/meminfo."""

    def test_typical(self) -> None:
        mem = parse_meminfo(MEMINFO)
        assert mem.total_kb == 3809036
        assert mem.available_kb == 1904518
        assert mem.free_kb == 148312
        assert mem.cached_kb == 1234567
        assert mem.used_kb == 1904518
        assert mem.percent == pytest.approx(50.0)

    def test_missing_mem_available_estimates_from_free(self) -> None:
        text = "MemTotal: 1000 kB\nMemFree: 100 kB\nBuffers: 50 kB\nCached: 250 kB\n"
        mem = parse_meminfo(text)
        assert mem.available_kb == 400
        assert mem.used_kb == 600

    def test_available_above_total_clamps_used(self) -> None:
        mem = parse_meminfo("MemTotal: 100 kB\nMemAvailable: 150 kB\n")
        assert mem.used_kb == 0
        assert mem.percent == 0.0

    def test_zero_total(self) -> None:
        mem = parse_meminfo("MemTotal: 0 kB\nMemAvailable: 0 kB\n")
        assert mem.percent == 0.0

    def test_unrelated_and_malformed_lines_skipped(self) -> None:
        text = "garbage\nMemTotal: 1000 kB\nMemAvailable: lots kB\nMemFree:\n"
        mem = parse_meminfo(text)
        assert mem.total_kb == 1000
        assert mem.available_kb == 0

    def test_missing_total(self) -> None:
        with pytest.raises(ParseError):
            parse_meminfo("MemFree: 100 kB\n")


class TestParseNetDev:
    """Tests for /proc/net/dev."""

    def test_sums_non_loopback(self) -> None:
        net = parse_net_dev(NET_DEV)
        assert net.rx_bytes == 1050000
        assert net.tx_bytes == 230000
        assert [i.name for i in net.interfaces] == ["wlan0", "rmnet0"]

    def test_name_glued_to_counter(self) -> None:
        header = "\n".join(NET_DEV.splitlines()[:2])
        text = header + "\n  eth0:123456789 10 0 0 0 0 0 0 987 10 0 0 0 0 0 0\n"
        net = parse_net_dev(text)
        assert net.rx_bytes == 123456789
        assert net.tx_bytes == 987

    def test_short_rows_skipped(self) -> None:
        text = NET_DEV + "  bad0: 1 2 3\n"
        assert parse_net_dev(text).rx_bytes == 1050000

    def test_only_loopback(self) -> None:
        """Loopback still counts as a readable row, it just isn't summed."""
        lines = NET_DEV.splitlines()
        net = parse_net_dev("\n".join(lines[:3]))
        assert net.rx_bytes == 0
        assert net.interfaces == ()

    def test_headers_only(self) -> None:
        with pytest.raises(ParseError):
            parse_net_dev("\n".join(NET_DEV.splitlines()[:2]))


class TestParseSize:
    """Tests for df size strings."""

    def test_suffixes_agree(self) -> None:
        assert parse_size_kb("10G") == parse_size_kb("10240M") == 10 * 1024 * 1024

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("512", 512),
            ("12K", 12),
            ("1.5M", 1536),
            ("2T", 2 * 1024**3),
            ("4.0G", 4 * 1024**2),
            ("7g", 7 * 1024**2),
        ],
    )
    def test_values(self, value: str, expected: int) -> None:
        assert parse_size_kb(value) == expected

    def test_unknown_suffix_is_kb(self) -> None:
        assert parse_size_kb("42Q") == 42

    def test_not_a_number(self) -> None:
        with pytest.raises(ParseError):
            parse_size_kb("-")


class TestParseDf:
    """Tests for df -h output."""

    def test_typical(self) -> None:
        disk = parse_df(DF_DATA, "/data")
        assert disk.mount == "/data"
        assert disk.filesystem == "/dev/block/dm-5"
        assert disk.total_kb == 10 * 1024**2
        assert disk.used_kb == 4 * 1024**2
        assert disk.available_kb == 6 * 1024**2
        assert disk.percent == pytest.approx(40.0)

    def test_picks_matching_mount(self) -> None:
        text = DF_DATA + "tmpfs 1.0G 0 1.0G 0% /mnt\n"
        assert parse_df(text, "/mnt").filesystem == "tmpfs"

    def test_falls_back_to_first_row(self) -> None:
        assert parse_df(DF_DATA, "/data/local/tmp").mount == "/data"

    def test_short_rows_skipped(self) -> None:
        text = DF_DATA + "/dev/block/sda1 1G\n"
        assert len(parse_df_table(text)) == 1

    def test_header_only(self) -> None:
        with pytest.raises(ParseError):
            parse_df("Filesystem Size Used Avail Use% Mounted on\n", "/data")


class TestParseProcessTable:
    """Tests for ps output."""

    def test_sorted_by_cpu(self) -> None:
        records = parse_process_table(PS_OUTPUT)
        assert [r.pid for r in records] == [4567, 812, 1, 2]

    def test_fields(self) -> None:
        app = parse_process_table(PS_OUTPUT)[0]
        assert app.user == "u0_a123"
        assert app.cpu_percent == 35.0
        assert app.mem_percent == 2.1
        assert app.name == "com.example.app:remote"
        assert app.ppid == 812
        assert app.rss_kb == 80000
        assert app.state == "R"

    def test_short_row_skipped(self) -> None:
        text = (
            "USER PID PPID VSZ RSS %CPU %MEM S ARGS\n"
            "root 10 1 100 10 1.0 0.1 S a\n"
            "root 11 1 100\n"
            "root 12 1 100 10 5.0 0.1 S b\n"
        )
        records = parse_process_table(text)
        assert [r.pid for r in records] == [12, 10]

    def test_non_numeric_pid_skipped(self) -> None:
        text = PS_OUTPUT + "root abc 0 0 0 0.0 0.0 S bogus\n"
        assert len(parse_process_table(text)) == 4

    def test_command_with_spaces(self) -> None:
        text = (
            "USER PID PPID VSZ RSS %CPU %MEM S ARGS\n"
            "root 5 1 1 1 0.5 0.1 S /bin/sh -c sleep 10\n"
        )
        assert parse_process_table(text)[0].name == "/bin/sh -c sleep 10"

    def test_top_style_header(self) -> None:
        """Columns are located from the header, not fixed offsets."""
        text = (
            "Tasks: 300 total\n"
            "  PID USER PR NI VIRT RES SHR S %CPU %MEM TIME+ ARGS\n"
            " 4567 u0_a123 10 -10 5.1G 120M 80M S 20.0 3.0 1:02.00 com.example.app\n"
            "  812 system 18 -2 9.4G 200M 90M S 40.0 5.0 9:00.00 system_server\n"
        )
        records = parse_process_table(text)
        assert [r.pid for r in records] == [812, 4567]
        assert records[0].user == "system"
        assert records[0].mem_percent == 5.0
        assert records[0].rss_kb is None

    def test_stable_order_for_ties(self) -> None:
        records = parse_process_table(PS_OUTPUT)
        assert [r.pid for r in records if r.cpu_percent == 0.0] == [1, 2]

    def test_bad_percent_reads_as_zero(self) -> None:
        text = "USER PID PPID VSZ RSS %CPU %MEM S ARGS\nroot 5 1 1 1 ? 0.1 S x\n"
        assert parse_process_table(text)[0].cpu_percent == 0.0

    def test_no_header(self) -> None:
        with pytest.raises(ParseError):
            parse_process_table("root 1 0 0 0 0.0 0.0 S init\n")


class TestLayoutFromHeader:
    """Tests for header-driven column detection."""

    def test_ps_header_matches_fixed_layout(self) -> None:
        tokens = "USER PID PPID VSZ RSS %CPU %MEM S ARGS".split()
        assert layout_from_header(tokens) == PS_LAYOUT

    def test_name_not_last(self) -> None:
        assert layout_from_header("USER PID ARGS %CPU %MEM".split()) is None

    def test_missing_cpu(self) -> None:
        assert layout_from_header("USER PID %MEM ARGS".split()) is None

    def test_alternate_labels(self) -> None:
        layout = layout_from_header("PID USER CPU% MEM% NAME".split())
        assert layout is not None
        assert (layout.cpu, layout.mem, layout.name) == (2, 3, 4)
