"""Unit tests for the Linux on POWER provider."""

from pathlib import Path
from unittest.mock import patch

import pytest

from ibmpower.interfaces import Unavailable, is_unavailable
from ibmpower.providers.linux import (
    KVM_GUEST,
    NO_FIRMWARE,
    NO_LINUX_RELEASE,
    NO_LPAR,
    NO_LPAR_NAME,
    NO_SERIAL,
    NO_SMT,
    NO_SPLPAR,
    LinuxPowerProvider,
)
from tests.fixtures import FakeClock, MockLogger, write_proc_tree
from tests.fixtures.sample_data import (
    SAMPLE_CPUINFO_KVM,
    SAMPLE_LPARCFG,
    SAMPLE_LPARCFG_DEDICATED,
    SAMPLE_LPARCFG_JS21,
    SAMPLE_LPARCFG_KVM,
)

TIMEBASE = 512000000


def rewrite(root, relative: str, content: str):
    Path(root, relative).write_text(content)


def lparcfg_with(**values) -> str:
    """SAMPLE_LPARCFG with some keys replaced."""
    lines = []
    for line in SAMPLE_LPARCFG.splitlines():
        key = line.split('=', 1)[0]
        if key in values:
            line = f'{key}={values[key]}'
        lines.append(line)
    return '\n'.join(lines) + '\n'


def make_provider(root, clock=None, **kwargs):
    return LinuxPowerProvider(logger=MockLogger(), clock=clock or FakeClock(100.0), root=str(root),
                              os_release=kwargs.pop('os_release', lambda: 'SUSE Linux Enterprise Server 15 SP5'),
                              **kwargs)


class TestModeDetection:
    """Tests for mode detection at construction."""

    def test_shared_lpar(self, linux_provider):
        assert linux_provider.lparcfg_exists is True
        assert linux_provider.is_splpar is True
        assert linux_provider.is_kvm_guest is False
        assert linux_provider.platform_name() == 'linux'

    def test_kvm_guest(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=SAMPLE_LPARCFG_KVM, cpuinfo=SAMPLE_CPUINFO_KVM)
        provider = make_provider(tmp_path)
        assert provider.is_kvm_guest is True
        assert provider.kvm_guest() == 'yes'

    def test_no_lparcfg(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=None)
        provider = make_provider(tmp_path)
        assert provider.lparcfg_exists is False
        assert provider.is_splpar is False


class TestPartitionConfiguration:
    """Tests for the static lparcfg metrics of a shared LPAR."""

    def test_capped(self, linux_provider):
        assert linux_provider.capped() == 'no'

    def test_capped_dedicated(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=SAMPLE_LPARCFG_DEDICATED)
        assert make_provider(tmp_path).capped() == 'yes'

    def test_cpu_entitlement(self, linux_provider):
        assert linux_provider.cpu_entitlement() == pytest.approx(0.5)

    def test_cpu_counts(self, linux_provider):
        assert linux_provider.cpu_in_lpar() == 2
        assert linux_provider.cpu_in_machine() == 20
        assert linux_provider.cpu_in_pool() == 16
        assert linux_provider.cpu_in_syspool() == 16

    def test_pool_and_weight(self, linux_provider):
        assert linux_provider.cpu_pool_id() == 0
        assert linux_provider.weight() == 128

    def test_splpar_and_lpar(self, linux_provider):
        assert linux_provider.splpar() == 'yes'
        assert linux_provider.lpar() == 'yes'

    def test_lpar_num(self, linux_provider):
        assert linux_provider.lpar_num() == 5

    def test_smt(self, linux_provider):
        """Eight threads on two virtual processors is SMT4."""
        assert linux_provider.smt() == 'yes (SMT=4)'

    def test_smt_off(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=lparcfg_with(partition_active_processors=8))
        assert make_provider(tmp_path).smt() == 'no (SMT=1)'

    def test_dedicated_has_no_pool(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=SAMPLE_LPARCFG_DEDICATED)
        provider = make_provider(tmp_path)
        assert provider.splpar() == 'no'
        assert is_unavailable(provider.cpu_pool_id())
        assert provider.weight() == Unavailable(NO_SPLPAR)
        assert provider.cpu_entitlement() == pytest.approx(4.0)


class TestWithoutLparcfg:
    """Tests for a system without /proc/ppc64/lparcfg (bare metal, PowerNV)."""

    @pytest.fixture
    def provider(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=None)
        return make_provider(tmp_path)

    def test_status_strings(self, provider):
        assert provider.capped() == Unavailable(NO_SPLPAR)
        assert provider.splpar() == Unavailable(NO_SPLPAR)
        assert provider.smt() == Unavailable(NO_SMT)
        assert provider.lpar_num() == Unavailable(NO_LPAR)

    def test_lpar_is_no(self, provider):
        assert provider.lpar() == 'no'

    def test_counts_fall_back_to_proc_stat(self, provider):
        assert provider.cpu_in_lpar() == 8
        assert provider.cpu_in_machine() == 8
        assert provider.cpu_entitlement() == pytest.approx(8.0)

    def test_model_from_cpuinfo(self, provider):
        assert provider.model_name() == 'IBM,9009-42A'

    def test_rates_unavailable(self, provider):
        assert is_unavailable(provider.cpu_used())
        assert is_unavailable(provider.cpu_pool_idle())

    def test_cpu_ec_without_consumption(self, provider):
        provider.cpu_used()
        assert provider.cpu_ec() == 0.0


class TestIdentity:
    """Tests for device-tree and OS identity metrics."""

    def test_lpar_name(self, linux_provider):
        assert linux_provider.lpar_name() == 'lpar05-web'

    def test_lpar_name_missing(self, tmp_path):
        write_proc_tree(tmp_path)
        assert make_provider(tmp_path).lpar_name() == Unavailable(NO_LPAR)

    def test_lpar_name_empty(self, tmp_path):
        write_proc_tree(tmp_path, device_tree={'ibm,partition-name': b''})
        assert make_provider(tmp_path).lpar_name() == Unavailable(NO_LPAR_NAME)

    def test_model_name_from_lparcfg(self, linux_provider):
        assert linux_provider.model_name() == 'IBM,9009-42A'

    def test_serial_from_system_id(self, linux_provider):
        assert linux_provider.serial_num() == 'IBM,02781A1BX'

    def test_serial_from_lparcfg(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=lparcfg_with(serial_number='IBM,0212345AB'))
        assert make_provider(tmp_path).serial_num() == 'IBM,0212345AB'

    def test_serial_not_found(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=None)
        assert make_provider(tmp_path).serial_num() == Unavailable(NO_SERIAL)

    def test_fwversion_from_device_tree(self, linux_provider):
        assert linux_provider.fwversion() == 'FW950.50 (92)'

    def test_fwversion_opal(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=None, device_tree={
            'ibm,opal/firmware/ml-version': b'OPAL FW920.20\x00',
            'ibm,opal/firmware/mi-version': b'SUPERVISOR 2200\x00',
        })
        assert make_provider(tmp_path).fwversion() == 'FW920.20 (2200)'

    def test_fwversion_not_detected(self, tmp_path):
        write_proc_tree(tmp_path)
        assert make_provider(tmp_path).fwversion() == Unavailable(NO_FIRMWARE)

    def test_cpu_type(self, linux_provider):
        assert linux_provider.cpu_type() == 'POWER9 (architected), altivec supported'

    @pytest.mark.parametrize("machine,expected", [('ppc64le', 'yes'), ('ppc64', 'yes'), ('ppc', 'no')])
    def test_kernel64bit(self, linux_provider, machine, expected):
        with patch('ibmpower.providers.linux.platform.machine', return_value=machine):
            assert linux_provider.kernel64bit() == expected

    def test_oslevel(self, linux_provider):
        assert linux_provider.oslevel() == 'Red Hat Enterprise Linux 9.2 (Plow)'

    def test_oslevel_computed_once(self, tmp_path):
        write_proc_tree(tmp_path)
        calls = []

        def release():
            calls.append(1)
            return 'Ubuntu 22.04.3 LTS'

        provider = make_provider(tmp_path, os_release=release)
        provider.oslevel()
        provider.oslevel()
        assert len(calls) == 1

    def test_oslevel_unknown(self, tmp_path):
        write_proc_tree(tmp_path)
        provider = make_provider(tmp_path, os_release=lambda: None)
        assert provider.oslevel() == Unavailable(NO_LINUX_RELEASE)


class TestKvmGuest:
    """Tests for a KVM guest."""

    def test_model_from_host_model(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=SAMPLE_LPARCFG_KVM, cpuinfo=SAMPLE_CPUINFO_KVM,
                        device_tree={'host-model': b'IBM,9009-22A\x00', 'host-serial': b'IBM,7810A3E2\x00'})
        provider = make_provider(tmp_path)
        assert provider.model_name() == 'IBM,9009-22A'
        assert provider.serial_num() == 'IBM,7810A3E2'

    def test_model_without_host_model(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=SAMPLE_LPARCFG_KVM, cpuinfo=SAMPLE_CPUINFO_KVM)
        provider = make_provider(tmp_path)
        assert provider.model_name() == KVM_GUEST
        assert provider.serial_num() == Unavailable(NO_SERIAL)

    def test_cpu_type_from_model(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=SAMPLE_LPARCFG_KVM, cpuinfo=SAMPLE_CPUINFO_KVM)
        assert make_provider(tmp_path).cpu_type() == 'IBM pSeries (emulated by qemu)'


class TestProcessorRates:
    """Tests for cpu_used, cpu_pool_idle and cpu_ec."""

    def test_cpu_used_from_purr(self, linux_provider, proc_root, fake_clock):
        """A quarter core of PURR ticks per second is 0.25 cores."""
        assert linux_provider.cpu_used() == 0.0

        fake_clock.advance(10)
        rewrite(proc_root, 'proc/ppc64/lparcfg', lparcfg_with(purr=5120000000 + TIMEBASE * 10 // 4))
        assert linux_provider.cpu_used() == pytest.approx(0.25)

    def test_cpu_ec_uses_last_cpu_used(self, linux_provider, proc_root, fake_clock):
        linux_provider.cpu_used()
        fake_clock.advance(10)
        rewrite(proc_root, 'proc/ppc64/lparcfg', lparcfg_with(purr=5120000000 + TIMEBASE * 10 // 4))
        linux_provider.cpu_used()
        assert linux_provider.cpu_ec() == pytest.approx(50.0)

    def test_cpu_ec_zero_entitlement(self, tmp_path):
        write_proc_tree(tmp_path, lparcfg=lparcfg_with(partition_entitled_capacity=0))
        assert make_provider(tmp_path).cpu_ec() == 100.0

    def test_cpu_used_spike_suppressed(self, linux_provider, proc_root, fake_clock):
        linux_provider.cpu_used()
        fake_clock.advance(2)
        rewrite(proc_root, 'proc/ppc64/lparcfg', lparcfg_with(purr=5120000000 + TIMEBASE * 1000))
        assert linux_provider.cpu_used() == 0.0

    def test_cpu_used_at_bound_suppressed(self, linux_provider, proc_root, fake_clock):
        """Exactly 256 cores is already implausible for cpu_used."""
        linux_provider.cpu_used()
        fake_clock.advance(10)
        rewrite(proc_root, 'proc/ppc64/lparcfg', lparcfg_with(purr=5120000000 + TIMEBASE * 10 * 256))
        assert linux_provider.cpu_used() == 0.0

    def test_cpu_pool_idle_at_bound_kept(self, linux_provider, proc_root, fake_clock):
        linux_provider.cpu_pool_idle()
        fake_clock.advance(10)
        rewrite(proc_root, 'proc/ppc64/lparcfg', lparcfg_with(pool_idle_time=1024000000 + TIMEBASE * 10 * 256))
        assert linux_provider.cpu_pool_idle() == pytest.approx(256.0)

    def test_cpu_pool_idle(self, linux_provider, proc_root, fake_clock):
        assert linux_provider.cpu_pool_idle() == 0.0
        fake_clock.advance(10)
        rewrite(proc_root, 'proc/ppc64/lparcfg', lparcfg_with(pool_idle_time=1024000000 + TIMEBASE * 30))
        assert linux_provider.cpu_pool_idle() == pytest.approx(3.0)

    def test_cpu_pool_idle_regression_holds(self, linux_provider, proc_root, fake_clock):
        linux_provider.cpu_pool_idle()
        fake_clock.advance(10)
        rewrite(proc_root, 'proc/ppc64/lparcfg', lparcfg_with(pool_idle_time=1024000000 + TIMEBASE * 30))
        linux_provider.cpu_pool_idle()

        fake_clock.advance(10)
        rewrite(proc_root, 'proc/ppc64/lparcfg', lparcfg_with(pool_idle_time=0))
        assert linux_provider.cpu_pool_idle() == pytest.approx(3.0)

    def test_cpu_pool_idle_without_timebase(self, tmp_path):
        write_proc_tree(tmp_path, cpuinfo="processor\t: 0\n")
        assert is_unavailable(make_provider(tmp_path).cpu_pool_idle())

    def test_cpu_used_without_purr_register(self, tmp_path):
        """JS21 blades fall back to the /proc/stat idle fraction."""
        clock = FakeClock(100.0)
        write_proc_tree(tmp_path, lparcfg=SAMPLE_LPARCFG_JS21)
        provider = make_provider(tmp_path, clock=clock)
        assert provider.cpu_used() == 0.0

        clock.advance(10)
        rewrite(tmp_path, 'proc/stat', "cpu  1400 20 500 8600 100 10 5 0 0 0\n")
        # 600 of 1000 jiffies idle on 4 virtual processors
        assert provider.cpu_used() == pytest.approx(1.6)
        assert provider.sampler.state('cpu_used') is None

    def test_purr_usability_rechecked(self, tmp_path):
        """After a partition migration the model is checked again."""
        clock = FakeClock(100.0)
        write_proc_tree(tmp_path, lparcfg=SAMPLE_LPARCFG_JS21)
        provider = make_provider(tmp_path, clock=clock)
        provider.cpu_used()
        assert provider.sampler.state('cpu_used') is None
        provider.logger.assert_logged('verboser', 'PURR usability checked for model IBM,8844-51')

        clock.advance(200)
        rewrite(tmp_path, 'proc/ppc64/lparcfg', SAMPLE_LPARCFG)
        provider.cpu_used()
        assert provider.sampler.state('cpu_used') is not None


class TestDiskRates:
    """Tests for the /proc/diskstats rates."""

    @staticmethod
    def diskstats(reads, sectors_read, writes, sectors_written):
        return f"   8       0 sda {reads} 0 {sectors_read} 0 {writes} 0 {sectors_written} 0 0 0 0 0 0 0 0\n"

    def test_disk_rates(self, tmp_path):
        clock = FakeClock(100.0)
        write_proc_tree(tmp_path, diskstats=self.diskstats(100, 1000, 200, 2000))
        provider = make_provider(tmp_path, clock=clock)
        assert provider.disk_iops() == 0.0
        assert provider.disk_read() == 0.0
        assert provider.disk_write() == 0.0

        clock.advance(10)
        rewrite(tmp_path, 'proc/diskstats', self.diskstats(150, 1200, 250, 2400))
        assert provider.disk_iops() == pytest.approx(10.0)
        assert provider.disk_read() == pytest.approx(200 * 512 / 10)
        assert provider.disk_write() == pytest.approx(400 * 512 / 10)

    def test_missing_diskstats(self, tmp_path):
        write_proc_tree(tmp_path, diskstats=None)
        provider = make_provider(tmp_path)
        assert is_unavailable(provider.disk_iops())
        assert is_unavailable(provider.disk_read())
        assert is_unavailable(provider.disk_write())


class TestPrime:
    """Tests for prime()."""

    def test_prime_takes_first_samples(self, linux_provider):
        linux_provider.prime()
        assert set(linux_provider.sampler.keys()) >= {
            'cpu_pool_idle', 'cpu_used', 'disk_iops', 'disk_read', 'disk_write',
        }
