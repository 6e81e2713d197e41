import numpy as np
import pytest

from VLSVtools import (read_meta, MetaData, UnknownCellIdError, UnknownVariableError,
                       MissingParameterError, IoError)
from conftest import fsgrid_field


def test_sorted_read_follows_cell_ids(meta, stored_ids):
    np.testing.assert_array_equal(meta.sorted_cellid, stored_ids)
    rho = meta.read_variable("proton/vg_rho")
    np.testing.assert_allclose(rho, stored_ids * 1.5)


def test_unsorted_read_is_file_order(meta):
    rho = meta.read_variable("proton/vg_rho", sorted=False)
    np.testing.assert_allclose(rho, meta.cellid * 1.5)


def test_sorted_and_unsorted_hold_the_same_values(meta):
    rho_sorted = meta.read_variable("proton/vg_rho")
    rho_unsorted = meta.read_variable("proton/vg_rho", sorted=False)
    assert rho_sorted.shape == rho_unsorted.shape
    np.testing.assert_array_equal(np.sort(rho_sorted), np.sort(rho_unsorted))


def test_vector_variable_shape(meta, stored_ids):
    b = meta.read_variable("vg_b_vol")
    assert b.shape == (71, 3)
    np.testing.assert_allclose(b[:, 2], 3 * stored_ids)


def test_cellid_variable(meta, stored_ids):
    np.testing.assert_array_equal(meta.read_variable("CellID"), stored_ids)


def test_select_with_all_ids_matches_sorted_read(meta):
    ids = meta.sorted_cellid
    np.testing.assert_array_equal(
        meta.read_variable_select("proton/vg_rho", ids), meta.read_variable("proton/vg_rho"))
    np.testing.assert_array_equal(
        meta.read_variable_select("vg_b_vol", ids), meta.read_variable("vg_b_vol"))


def test_select_keeps_caller_order(meta):
    values = meta.read_variable_select("proton/vg_rho", [74, 2, 74, 3])
    np.testing.assert_allclose(values, [111.0, 3.0, 111.0, 4.5])
    b = meta.read_variable_select("vg_b_vol", [138, 64])
    np.testing.assert_allclose(b, [[138, 276, 414], [64, 128, 192]])


def test_select_single_id(meta):
    assert meta.read_variable_select("proton/vg_rho", 65) == pytest.approx(97.5)
    np.testing.assert_allclose(meta.read_variable_select("vg_b_vol", 65), [65, 130, 195])


def test_select_empty(meta):
    assert meta.read_variable_select("proton/vg_rho", []).shape == (0,)


@pytest.mark.parametrize("ids", [[2, 3, 1], [577], [5, 0]])
def test_select_unknown_id(meta, ids):
    before = meta.read_variable_select("proton/vg_rho", [2, 65, 138])
    kept = before.copy()
    with pytest.raises(UnknownCellIdError) as err:
        meta.read_variable_select("proton/vg_rho", ids)
    assert isinstance(err.value, KeyError)
    np.testing.assert_array_equal(before, kept)
    # the reader stays usable
    assert meta.read_variable_select("proton/vg_rho", 2) == pytest.approx(3.0)


def test_select_on_fsgrid_variable(meta):
    with pytest.raises(ValueError):
        meta.read_variable_select("fg_rho", [2])


def test_unknown_variable(meta):
    with pytest.raises(UnknownVariableError):
        meta.read_variable("proton/vg_nope")
    assert not meta.has_variable("proton/vg_nope")
    assert meta.has_variable("proton/vg_rho")


def test_parameters_and_time(meta):
    assert meta.has_parameter("numWritingRanks")
    assert meta.read_parameter("xmax") == 4.0
    assert meta.time == 12.5
    with pytest.raises(MissingParameterError):
        meta.read_parameter("dt")


def test_variable_listing_and_info(meta):
    assert set(meta.show_variables("SpatialGrid")) == {"CellID", "proton/vg_rho", "vg_b_vol", "vg_rank"}
    assert "fg_b" in meta.show_variables()
    info = meta.read_variable_info("proton/vg_rho")
    assert info.unit == "1/m^3"
    assert info.unit_conversion == "1.0"
    assert meta.read_variable_info("vg_b_vol").unit == ""


def test_plain_read_keeps_fsgrid_file_layout(meta):
    raw = meta.read_variable("fg_rho", sorted=True)
    assert raw.shape == (512,)
    assert raw[0] == 0.0


@pytest.mark.parametrize("n_ranks", [1, 2])
@pytest.mark.parametrize("decomposition", [False, True])
def test_fsgrid_reassembly(make_vlsv, n_ranks, decomposition):
    field = fsgrid_field()
    with read_meta(make_vlsv(n_ranks=n_ranks, decomposition=decomposition)) as meta:
        np.testing.assert_array_equal(meta.read_fsgrid_variable("fg_rho"), field)
        b = meta.read_fsgrid_variable("fg_b")
        assert b.shape == (8, 8, 8, 3)
        np.testing.assert_array_equal(b[..., 1], 2 * field)


def test_cellid_from_mesh_element_when_variable_missing(make_vlsv):
    from conftest import sample_entries
    entries = [e for e in sample_entries() if not (e[0] == "VARIABLE" and e[1]["name"] == "CellID")]
    with read_meta(make_vlsv(entries=entries)) as meta:
        assert meta.sorted_cellid.size == 71


def test_context_manager_closes_file(vlsv_file):
    with read_meta(vlsv_file) as meta:
        assert isinstance(meta, MetaData)
        assert not meta.closed
    assert meta.closed
    with pytest.raises(IoError):
        meta.read_variable("proton/vg_rho")


def test_spatial_queries(meta):
    cid = meta.get_cellid([2.0, 0.0, 0.0])
    assert cid == 3
    assert meta.get_amr_level(cid) == 0
    np.testing.assert_allclose(meta.get_cell_coordinates(cid), [2.5, 0.5, 0.5])
    ids, distances, _ = meta.get_cell_in_line([0.2, 0.2, 0.2], [0.2, 0.2, 0.2])
    assert ids.tolist() == [65]
    assert meta.get_slice_cellid(0.1, 2).size == 19


def test_read_slice(meta):
    plane = meta.read_slice("proton/vg_rho", 0.1, 2)
    assert plane.shape == (8, 8)
    assert not np.any(np.isnan(plane))
    assert plane[0, 0] == 65 * 1.5
    assert plane[1, 1] == 74 * 1.5
    assert plane[2, 0] == plane[3, 1] == 2 * 1.5
    assert plane[7, 7] == 16 * 1.5
