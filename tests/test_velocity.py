import numpy as np
import pytest

from VLSVtools import NoDistributionError, NotFoundError, UnknownVariableError

AVGS = (np.arange(3 * 64, dtype=np.float32) / 8).reshape(3, 64)


def test_populations(meta):
    assert meta.populations == ["proton", "electron"]


def test_block_offsets(meta):
    assert meta.velocity.block_offset(5) == (0, 2)
    assert meta.velocity.block_offset(65) == (2, 1)
    assert meta.velocity.block_offset(2) is None
    assert meta.velocity.has_distribution(65)
    np.testing.assert_array_equal(meta.velocity.cells_with_distribution(), [5, 65])


def test_read_velocity_block(meta):
    block = meta.read_velocity_block(5)
    assert block.spatial_cell_id == 5
    assert block.population_name == "proton"
    assert len(block) == 128
    np.testing.assert_array_equal(block.velocity_cell_ids[:64], np.arange(64))
    np.testing.assert_array_equal(block.velocity_cell_ids[64:], 3 * 64 + np.arange(64))
    np.testing.assert_allclose(block.values, AVGS[:2].reshape(-1))


def test_read_velocity_cells_of_single_block_cell(meta):
    cells = meta.read_velocity_cells(65)
    assert len(cells) == 64
    assert min(cells) == 7 * 64
    assert max(cells) == 7 * 64 + 63
    assert cells[7 * 64 + 10] == pytest.approx(AVGS[2, 10])


def test_cell_without_distribution(meta):
    with pytest.raises(NoDistributionError) as err:
        meta.read_velocity_block(2)
    assert isinstance(err.value, LookupError)


def test_unknown_population(meta):
    with pytest.raises(UnknownVariableError):
        meta.read_velocity_block(5, pop="helium")


def test_nearest_cell_with_distribution(meta):
    assert meta.nearest_cell_with_distribution(5) == 5
    assert meta.nearest_cell_with_distribution(65) == 65
    # centre of cell 2 is 1.3 from cell 65 and sqrt(2) from cell 5
    assert meta.nearest_cell_with_distribution(2) == 65
    assert meta.nearest_cell_with_distribution(9) == 5


def test_nearest_cell_without_any_distribution(meta):
    with pytest.raises(NotFoundError):
        meta.nearest_cell_with_distribution(2, pop="electron")


def test_velocity_mesh(meta):
    vmesh = meta.velocity_mesh()
    assert vmesh.n_blocks == (2, 2, 2)
    assert vmesh.block_size == (4, 4, 4)
    np.testing.assert_allclose(vmesh.dv, [1.0, 1.0, 1.0])
    np.testing.assert_array_equal(vmesh.n_cells, [8, 8, 8])


def test_velocity_cell_coordinates(meta):
    coords = meta.get_velocity_cell_coordinates([0, 3 * 64 + 1, 7 * 64 + 63])
    np.testing.assert_allclose(coords, [[-3.5, -3.5, -3.5],
                                        [1.5, 0.5, -3.5],
                                        [3.5, 3.5, 3.5]])


def test_distribution_named_after_population(meta):
    rec = meta.footer.find("BLOCKVARIABLE", name="proton")
    assert rec.mesh == "SpatialGrid"
    block = meta.read_velocity_block(65)
    np.testing.assert_allclose(block.values, AVGS[2])


def test_legacy_avgs_distribution(make_vlsv):
    from VLSVtools import read_meta
    with read_meta(make_vlsv(legacy_distribution=True)) as meta:
        assert meta.footer.find("BLOCKVARIABLE", name="proton") is None
        block = meta.read_velocity_block(5)
        np.testing.assert_allclose(block.values, AVGS[:2].reshape(-1))
