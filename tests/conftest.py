"""
Synthetic VLSV snapshots for the test suite.

The sample spatial mesh has a 4x4x4 base grid over [0, 4]^3 with one level of
refinement: base cell 1 is refined into its eight children (65, 66, 73, 74,
129, 130, 137, 138), every other base cell 2..64 is a leaf. The field-solver
grid is 8x8x8, written by two ranks.
"""
import numpy as np
import pytest

HEADER_SIZE = 16
DATATYPES = {"f": "float", "i": "int", "u": "uint"}

BASE_GRID = (4, 4, 4)
REFINED_CHILDREN = [65, 66, 73, 74, 129, 130, 137, 138]
STORED_IDS = np.array(list(range(2, 65)) + REFINED_CHILDREN, dtype=np.uint64)
FSGRID_SIZE = (8, 8, 8)


def write_vlsv(path, entries, byteorder="<", footer=None):
    """
    Write a VLSV file.

    Args:
        path: output path
        entries: list of (tag, attributes, array); 2D arrays are written
                 record by record with vectorsize = shape[1]
        byteorder: '<' or '>'
        footer: raw footer bytes replacing the generated XML
    """
    payload = bytearray()
    lines = ["<VLSV>"]
    for tag, attrs, data in entries:
        data = np.atleast_1d(np.asarray(data))
        vector_size = 1 if data.ndim == 1 else data.shape[1]
        attr_text = " ".join(f'{k}="{v}"' for k, v in attrs.items())
        lines.append(
            f'<{tag} {attr_text} arraysize="{data.shape[0]}" vectorsize="{vector_size}" '
            f'datasize="{data.dtype.itemsize}" datatype="{DATATYPES[data.dtype.kind]}">'
            f'{HEADER_SIZE + len(payload)}</{tag}>')
        payload += data.astype(data.dtype.newbyteorder(byteorder)).tobytes()
    lines.append("</VLSV>")

    header = bytearray(HEADER_SIZE)
    header[0] = 0 if byteorder == "<" else 1
    footer_offset = np.array([HEADER_SIZE + len(payload)], dtype=np.dtype(np.uint64).newbyteorder(byteorder))
    header[8:16] = footer_offset.tobytes()

    if footer is None:
        footer = "\n".join(lines).encode()
    path.write_bytes(bytes(header) + bytes(payload) + footer)
    return path


def fsgrid_field():
    """Global field-solver values; value encodes the (x, y, z) index."""
    x, y, z = np.meshgrid(*[np.arange(n) for n in FSGRID_SIZE], indexing="ij")
    return (x + 10 * y + 100 * z).astype(np.float64)


def fsgrid_chunks(field, n_ranks):
    """Per-rank chunks, x fastest; the 8^3 grid splits along z for 2 ranks."""
    if n_ranks == 1:
        boxes = [field]
    else:
        boxes = [field[:, :, :4], field[:, :, 4:]]
    if field.ndim == 4:
        return np.concatenate(
            [b.reshape(-1, field.shape[-1], order="F") for b in boxes], axis=0)
    return np.concatenate([b.ravel(order="F") for b in boxes])


def sample_entries(
    order_seed=0,
    n_ranks=2,
    rho_scale=1.5,
    parameters=True,
    max_level_parameter=True,
    spatial_bbox=True,
    decomposition=False,
    legacy_distribution=False):
    """Footer entries of the sample snapshot."""
    rng = np.random.default_rng(order_seed)
    cellids = rng.permutation(STORED_IDS)
    entries = []

    if parameters:
        for name, value in zip(("xcells_ini", "ycells_ini", "zcells_ini"), BASE_GRID):
            entries.append(("PARAMETER", {"name": name}, np.uint32(value)))
        for name in ("xmin", "ymin", "zmin"):
            entries.append(("PARAMETER", {"name": name}, np.float64(0.0)))
        for name in ("xmax", "ymax", "zmax"):
            entries.append(("PARAMETER", {"name": name}, np.float64(4.0)))
    if max_level_parameter:
        entries.append(("PARAMETER", {"name": "max_refinement_level"}, np.int32(1)))
    entries.append(("PARAMETER", {"name": "time"}, np.float64(12.5)))
    entries.append(("PARAMETER", {"name": "numWritingRanks"}, np.uint32(n_ranks)))

    entries.append(("MESH", {"name": "SpatialGrid", "type": "amr_ucd"}, cellids))
    if spatial_bbox:
        entries.append(("MESH_BBOX", {"mesh": "SpatialGrid"}, np.array([4, 4, 4, 1, 1, 1], dtype=np.int64)))
        for tag in ("MESH_NODE_CRDS_X", "MESH_NODE_CRDS_Y", "MESH_NODE_CRDS_Z"):
            entries.append((tag, {"mesh": "SpatialGrid"}, np.linspace(0.0, 4.0, 5)))
    entries.append(("VARIABLE", {"name": "CellID", "mesh": "SpatialGrid"}, cellids))
    entries.append(("VARIABLE",
                    {"name": "proton/vg_rho", "mesh": "SpatialGrid", "unit": "1/m^3",
                     "unitLaTeX": "$\\mathrm{m}^{-3}$", "variableLaTeX": "$n_\\mathrm{p}$",
                     "unitConversion": "1.0"},
                    cellids.astype(np.float64) * rho_scale))
    b = cellids.astype(np.float64)
    entries.append(("VARIABLE", {"name": "vg_b_vol", "mesh": "SpatialGrid"},
                    np.stack([b, 2 * b, 3 * b], axis=1)))
    # rank-dependent, excluded from comparisons
    entries.append(("VARIABLE", {"name": "vg_rank", "mesh": "SpatialGrid"},
                    (np.arange(cellids.size) % n_ranks).astype(np.int32)))

    field = fsgrid_field()
    entries.append(("MESH_BBOX", {"mesh": "fsgrid"}, np.array([8, 8, 8, 1, 1, 1], dtype=np.int64)))
    if decomposition:
        entries.append(("MESH_DECOMPOSITION", {"mesh": "fsgrid"},
                        np.array([1, 1, n_ranks], dtype=np.uint32)))
    entries.append(("VARIABLE", {"name": "fg_rho", "mesh": "fsgrid"}, fsgrid_chunks(field, n_ranks)))
    entries.append(("VARIABLE", {"name": "fg_b", "mesh": "fsgrid"},
                    fsgrid_chunks(np.stack([field, 2 * field, 3 * field], axis=-1), n_ranks)))

    # proton distributions in cells 5 (blocks 0 and 3) and 65 (block 7)
    entries.append(("CELLSWITHBLOCKS", {"name": "proton", "mesh": "SpatialGrid"}, np.array([5, 65], dtype=np.uint64)))
    entries.append(("BLOCKSPERCELL", {"name": "proton", "mesh": "SpatialGrid"}, np.array([2, 1], dtype=np.uint32)))
    entries.append(("BLOCKIDS", {"name": "proton", "mesh": "SpatialGrid"}, np.array([0, 3, 7], dtype=np.uint32)))
    # older single-population files name the distribution "avgs" on the population mesh
    avgs_attrs = ({"name": "avgs", "mesh": "proton"} if legacy_distribution
                  else {"name": "proton", "mesh": "SpatialGrid"})
    entries.append(("BLOCKVARIABLE", avgs_attrs,
                    (np.arange(3 * 64, dtype=np.float32) / 8).reshape(3, 64)))
    entries.append(("MESH_BBOX", {"mesh": "proton"}, np.array([2, 2, 2, 4, 4, 4], dtype=np.int64)))
    for tag in ("MESH_NODE_CRDS_X", "MESH_NODE_CRDS_Y", "MESH_NODE_CRDS_Z"):
        entries.append((tag, {"mesh": "proton"}, np.linspace(-4.0, 4.0, 9)))

    # a population without any stored distribution
    entries.append(("CELLSWITHBLOCKS", {"name": "electron", "mesh": "SpatialGrid"}, np.zeros(0, dtype=np.uint64)))
    entries.append(("BLOCKSPERCELL", {"name": "electron", "mesh": "SpatialGrid"}, np.zeros(0, dtype=np.uint32)))
    entries.append(("BLOCKIDS", {"name": "electron", "mesh": "SpatialGrid"}, np.zeros(0, dtype=np.uint32)))
    entries.append(("BLOCKVARIABLE", {"name": "electron", "mesh": "SpatialGrid"}, np.zeros((0, 64), dtype=np.float32)))
    return entries


@pytest.fixture
def stored_ids():
    return np.sort(STORED_IDS.astype(np.int64))


@pytest.fixture
def make_vlsv(tmp_path):
    """Factory writing a sample snapshot; keyword arguments go to sample_entries."""
    counter = [0]

    def _make(byteorder="<", footer=None, entries=None, **kwargs):
        counter[0] += 1
        path = tmp_path / f"bulk.{counter[0]:07d}.vlsv"
        if entries is None:
            entries = sample_entries(**kwargs)
        return write_vlsv(path, entries, byteorder=byteorder, footer=footer)

    return _make


@pytest.fixture
def vlsv_file(make_vlsv):
    return make_vlsv()


@pytest.fixture
def meta(vlsv_file):
    from VLSVtools import read_meta
    with read_meta(vlsv_file) as m:
        yield m
