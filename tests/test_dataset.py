import pytest

from bovw.dataset import DataSet, load_manifest, manifest_from_yaml, split_counts
from bovw.exceptions import ManifestMismatch


def test_split_blocks_are_contiguous():
    paths = [f"img{i}.png" for i in range(10)]
    dataset = DataSet(paths, 5, 3, 2, label=4)
    assert dataset.data_info() == (5, 3, 2, 4)
    assert dataset.split_paths('train') == paths[:5]
    assert dataset.split_paths('valid') == paths[5:8]
    assert dataset.split_paths('test') == paths[8:]
    assert dataset.image_path('valid', 0) == 'img5.png'
    assert dataset.image_path('test', 1) == dataset.data_list(9)


def test_index_outside_split():
    dataset = DataSet(['a', 'b', 'c'], 1, 1, 1, label=0)
    with pytest.raises(IndexError):
        dataset.image_path('train', 1)


def test_sizes_must_fit_paths():
    with pytest.raises(ManifestMismatch):
        DataSet(['a', 'b'], 2, 1, 0, label=0)
    with pytest.raises(ManifestMismatch):
        DataSet(['a', 'b'], -1, 1, 0, label=0)


def test_load_manifest_from_directories(tmp_path):
    for name, count in (('cars', 10), ('faces', 5)):
        d = tmp_path / name
        d.mkdir()
        for i in range(count):
            (d / f"{i}.png").write_bytes(b'')
        (d / 'notes.txt').write_text('not an image')

    datasets = load_manifest(str(tmp_path), valid_fraction=0.2, test_fraction=0.2, random_state=1)
    assert [d.name for d in datasets] == ['cars', 'faces']
    assert [d.label for d in datasets] == [0, 1]
    assert datasets[0].data_info() == (6, 2, 2, 0)
    assert datasets[1].data_info() == (3, 1, 1, 1)
    assert all(p.endswith('.png') for p in datasets[0].paths)
    again = load_manifest(str(tmp_path), random_state=1)
    assert again[0].paths == datasets[0].paths


def test_split_counts_never_exceed_the_class():
    assert split_counts(10, 0.2, 0.2) == (6, 2, 2)
    assert split_counts(3, 0.5, 0.5) == (0, 2, 1)
    assert split_counts(5, 0.1, 0.1) == (5, 0, 0)
    with pytest.raises(ManifestMismatch):
        split_counts(5, 0.7, 0.4)


def test_load_manifest_small_class(tmp_path):
    d = tmp_path / 'tiny'
    d.mkdir()
    for i in range(3):
        (d / f"{i}.jpg").write_bytes(b'')
    [dataset] = load_manifest(str(tmp_path), valid_fraction=0.5, test_fraction=0.5)
    assert dataset.data_info()[1:3] == (2, 1)
    assert dataset.size('train') + dataset.size('valid') + dataset.size('test') == 3


def test_load_manifest_needs_classes(tmp_path):
    with pytest.raises(ManifestMismatch):
        load_manifest(str(tmp_path))
    with pytest.raises(ManifestMismatch):
        load_manifest(str(tmp_path / 'missing'))


def test_yaml_manifest(tmp_path):
    path = tmp_path / 'manifest.yaml'
    path.write_text("- name: cars\n"
                    "  label: 3\n"
                    "  train: 1\n"
                    "  valid: 1\n"
                    "  test: 0\n"
                    "  paths: [a.png, /abs/b.png]\n")
    [dataset] = manifest_from_yaml(str(path))
    assert dataset.label == 3
    assert dataset.paths == [str(tmp_path / 'a.png'), '/abs/b.png']


def test_yaml_manifest_missing_key(tmp_path):
    path = tmp_path / 'manifest.yaml'
    path.write_text("- name: cars\n  label: 3\n  paths: [a.png]\n")
    with pytest.raises(ManifestMismatch):
        manifest_from_yaml(str(path))
