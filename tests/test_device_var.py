"""Tests for single-value storage (DeviceVar/UniversalVar/HostVar) and its viewers."""

import copy
import gc

import ml_dtypes
import numpy as np
import pytest

from accel_buffer.device_var import (
    DeviceVar,
    HostVar,
    UniversalVar,
    make_cdense,
    make_cviewer,
    make_dense,
    make_viewer,
)
from accel_buffer.var_view import CDense, Dense, VarView, resolve_dtype
from accel_launch.parallel_for import ParallelFor
from accel_runtime.backend import MemoryDomain
from accel_runtime.errors import IllegalAddressError, KernelExecutionError, TransferError

VAR_TYPES = [DeviceVar, UniversalVar, HostVar]


# ---------------------------------------------------------------------------
# 1. Construction and round trips
# ---------------------------------------------------------------------------


class TestRoundTrip:
    @pytest.mark.parametrize("var_type", VAR_TYPES)
    @pytest.mark.parametrize(
        "dtype,value",
        [
            (np.int32, 7),
            (np.int64, -2**40),
            (np.float64, 3.25),
            (np.float16, 0.5),
            (np.bool_, True),
            (np.complex128, 1 + 2j),
        ],
    )
    def test_value_round_trips(self, var_type, dtype, value):
        var = var_type(dtype, value)
        result = var.get()
        assert result == value
        assert np.asarray(result).dtype == np.dtype(dtype)

    @pytest.mark.parametrize("var_type", VAR_TYPES)
    def test_domain(self, var_type):
        var = var_type(np.int32, 1)
        assert var.data.domain is var_type.domain
        assert var.view().domain is var_type.domain

    @pytest.mark.parametrize("var_type", VAR_TYPES)
    def test_bfloat16_by_name(self, var_type):
        var = var_type("bfloat16", 1.5)
        assert var.dtype == np.dtype(ml_dtypes.bfloat16)
        assert float(var.get()) == 1.5

    def test_dtype_names(self):
        assert resolve_dtype("float16") == np.dtype(np.float16)
        assert resolve_dtype(np.int32) == np.dtype(np.int32)
        assert resolve_dtype(object) == np.dtype(object)
        with pytest.raises(TypeError):
            resolve_dtype("no-such-type")

    def test_missing_dtype_rejected(self, backend):
        with pytest.raises(TypeError):
            resolve_dtype(None)
        with pytest.raises(TypeError):
            DeviceVar(None)
        assert backend.live_allocations == 0

    def test_structured_value(self):
        point = np.dtype([("x", np.int32), ("y", np.float64)])
        var = DeviceVar(point, (3, 1.5))
        result = var.get()
        assert result["x"] == 3
        assert result["y"] == 1.5

    def test_object_value_is_copied(self):
        payload = {"weights": [1, 2, 3]}
        var = DeviceVar(object, payload)
        result = var.get()
        assert result == payload
        assert result is not payload
        payload["weights"].append(4)
        assert var.get() == {"weights": [1, 2, 3]}

    def test_default_construct_allocates_once(self, backend):
        var = DeviceVar(np.float32)
        assert backend.live_allocations == 1
        assert var.dtype == np.dtype(np.float32)

    def test_set_overwrites(self):
        var = DeviceVar(np.int32, 1)
        var.set(2)
        assert var.get() == 2
        var.set(-9).set(10)
        assert var.get() == 10

    def test_set_unconvertible_value(self):
        var = DeviceVar(np.int32, 1)
        with pytest.raises(TransferError):
            var.set("not a number")
        assert var.get() == 1

    def test_failed_initial_value_releases_storage(self, backend):
        with pytest.raises(TransferError):
            DeviceVar(np.int32, "x")
        gc.collect()
        assert backend.live_allocations == 0

    def test_failed_transfer_does_not_poison_later_ones(self, backend):
        def boom(i):
            raise ZeroDivisionError("bad kernel")

        ParallelFor(1, stream=backend.create_stream("work")).apply(1, boom)
        with pytest.raises(KernelExecutionError):
            DeviceVar(np.int32, 5)
        assert backend.default_stream.query()
        assert DeviceVar(np.int32, 7).get() == 7


# ---------------------------------------------------------------------------
# 2. Copies between domains
# ---------------------------------------------------------------------------


class TestCopy:
    @pytest.mark.parametrize("src_type", VAR_TYPES)
    @pytest.mark.parametrize("dst_type", VAR_TYPES)
    def test_copy_construct_across_domains(self, src_type, dst_type):
        src = src_type(np.int64, 11)
        dst = dst_type.from_var(src)
        assert dst.get() == 11
        assert dst.data.address != src.data.address
        src.set(12)
        assert dst.get() == 11

    def test_copy_construct_from_view(self):
        host = HostVar(np.float64, 2.5)
        dev = DeviceVar.from_var(host.view())
        assert isinstance(dev, DeviceVar)
        assert dev.get() == 2.5

    def test_copy_module(self):
        var = UniversalVar(np.int32, 5)
        clone = copy.copy(var)
        deep = copy.deepcopy(var)
        assert type(clone) is UniversalVar
        assert clone.get() == deep.get() == 5
        assert clone.data is not var.data

    def test_deepcopy_owns_new_storage(self, backend):
        var = DeviceVar(np.int32, 5)
        deep = var.__deepcopy__({})
        assert type(deep) is DeviceVar
        assert deep.data.address != var.data.address
        var.set(6)
        assert deep.get() == 5
        assert backend.live_allocations == 2

    @pytest.mark.parametrize("src_type", VAR_TYPES)
    def test_copy_assign(self, src_type):
        dst = DeviceVar(np.int32, 0)
        dst.copy_from(src_type(np.int32, 8))
        assert dst.get() == 8
        dst.copy_from(HostVar(np.int32, 9).view())
        assert dst.get() == 9

    def test_self_assign(self):
        var = DeviceVar(np.int32, 4)
        var.copy_from(var)
        assert var.get() == 4

    def test_dtype_mismatch(self):
        dst = DeviceVar(np.int32, 0)
        with pytest.raises(TransferError, match="dtype"):
            dst.copy_from(DeviceVar(np.float64, 1.0))

    def test_copy_from_plain_value_rejected(self):
        with pytest.raises(TypeError):
            DeviceVar(np.int32, 0).copy_from(3)

    def test_copy_across_backends_rejected(self, make_backend):
        other = DeviceVar(np.int32, 1, backend=make_backend())
        with pytest.raises(TransferError):
            DeviceVar(np.int32, 0).copy_from(other)


# ---------------------------------------------------------------------------
# 3. Ownership
# ---------------------------------------------------------------------------


class TestOwnership:
    def test_move_transfers_storage(self, backend):
        var = DeviceVar(np.int32, 3)
        address = var.data.address
        moved = var.move()
        assert isinstance(moved, DeviceVar)
        assert moved.data.address == address
        assert moved.get() == 3
        assert var.empty
        assert backend.live_allocations == 1

    def test_moved_from_rejects_transfers(self):
        var = DeviceVar(np.int32, 3)
        var.move()
        with pytest.raises(TransferError):
            var.get()
        with pytest.raises(TransferError):
            var.set(1)
        with pytest.raises(TransferError):
            var.viewer()

    def test_release_once(self, backend):
        var = DeviceVar(np.int32, 3)
        var.release()
        var.release()
        assert backend.live_allocations == 0
        assert var.empty

    def test_context_manager(self, backend):
        with HostVar(np.float32, 1.0) as var:
            assert var.get() == 1.0
        assert backend.live_allocations == 0

    def test_garbage_collected_var_frees_storage(self, backend):
        var = DeviceVar(np.int32, 3)
        moved = var.move()
        del var, moved
        gc.collect()
        assert backend.live_allocations == 0

    def test_double_free_rejected(self, backend):
        allocation = backend.allocate(MemoryDomain.DEVICE, np.dtype(np.int32))
        backend.free(allocation)
        with pytest.raises(TransferError):
            backend.free(allocation)


# ---------------------------------------------------------------------------
# 4. Viewers
# ---------------------------------------------------------------------------


class TestViewers:
    def test_kernel_updates_through_viewer(self):
        counter = DeviceVar(np.int64, 0)
        dense = counter.viewer()
        ParallelFor(8).apply(100, lambda i: dense.set(dense.get() + 1))
        # get() is a blocking transfer on the default stream; the kernel runs first.
        assert counter.get() == 100

    def test_kernel_reads_through_cviewer(self):
        src = DeviceVar(np.float64, 2.0)
        dst = DeviceVar(np.float64, 0.0)
        cview, out = src.cviewer(), dst.viewer()
        ParallelFor(1).apply(1, lambda i: out.set(cview.get() * 21)).wait()
        assert dst.get() == 42.0

    def test_get_waits_for_other_streams(self, backend):
        var = DeviceVar(np.int32, 0)
        dense = var.viewer()
        stream = backend.create_stream()
        ParallelFor(4, stream=stream).apply(1, lambda i: dense.set(5))
        assert var.get() == 5
        assert stream.query()

    def test_cviewer_is_read_only(self):
        cview = DeviceVar(np.int32, 1).cviewer()
        assert isinstance(cview, CDense)
        assert not isinstance(cview, Dense)
        assert not hasattr(cview, "set")

    def test_viewer_carries_address_and_domain(self):
        var = UniversalVar(np.int16, 1)
        for viewer in (var.viewer(), var.cviewer(), make_viewer(var), make_cviewer(var)):
            assert viewer.address == var.data.address
            assert viewer.domain is MemoryDomain.UNIFIED
            assert viewer.dtype == np.dtype(np.int16)

    def test_dense_helpers(self):
        var = UniversalVar(np.int16, 3)
        dense, cdense = make_dense(var), make_cdense(var)
        assert type(dense) is Dense
        assert type(cdense) is CDense
        dense.set(4)
        assert cdense.get() == 4
        assert cdense.address == dense.address == var.data.address

    def test_host_cannot_touch_device_viewer(self):
        dense = DeviceVar(np.int32, 1).viewer()
        with pytest.raises(IllegalAddressError):
            dense.get()
        with pytest.raises(IllegalAddressError):
            dense.set(2)

    def test_unified_viewer_usable_on_host(self):
        var = UniversalVar(np.int32, 1)
        dense = var.viewer()
        assert dense.get() == 1
        dense.set(6)
        assert var.get() == 6

    def test_kernel_cannot_touch_host_storage(self, backend):
        dense = HostVar(np.int32, 1).viewer()
        launcher = ParallelFor(1).apply(1, lambda i: dense.set(2))
        with pytest.raises(IllegalAddressError):
            launcher.wait()

    def test_access_checks_can_be_disabled(self, make_backend):
        relaxed = make_backend(check_memory_access=False)
        dense = DeviceVar(np.int32, 4, backend=relaxed).viewer()
        assert dense.get() == 4

    def test_view_transfers(self):
        var = DeviceVar(np.float32, 1.0)
        view = var.view()
        assert isinstance(view, VarView)
        view.copy_from(8.0)
        assert view.copy_to() == 8.0
        assert var.get() == 8.0
        assert isinstance(view.viewer(), Dense)
        assert isinstance(view.cviewer(), CDense)
