import numpy as np

from bovw.report import normalized_confusion, plot_confusion_matrix, write_results


def evaluation():
    return {
        'accuracy': 0.75,
        'report': 'precision recall',
        'confusion_matrix': np.array([[3, 1], [1, 3]]),
        'class_names': ['cats', 'dogs'],
    }


def test_normalized_confusion_keeps_empty_rows_zero():
    cm = normalized_confusion([[3, 1], [0, 0]])
    np.testing.assert_allclose(cm, [[0.75, 0.25], [0.0, 0.0]])


def test_plots_from_evaluation(tmp_path):
    counts = plot_confusion_matrix(evaluation(), str(tmp_path))
    normalized = plot_confusion_matrix(evaluation(), str(tmp_path), filename='normalized.png', normalize=True)
    assert counts == str(tmp_path / 'confusion_matrix.png')
    assert (tmp_path / 'confusion_matrix.png').stat().st_size > 0
    assert (tmp_path / 'normalized.png').exists()
    assert normalized.endswith('normalized.png')


def test_write_results(tmp_path):
    path = tmp_path / 'results.txt'
    write_results(path, 'BoVW SIFT results', evaluation(), split_accuracies={('cats', 'test'): 0.75},
                  codebook_size=200)
    text = path.read_text()
    assert 'Codebook size: 200' in text
    assert 'Accuracy: 0.7500' in text
    assert 'cats [test]: 0.7500' in text
    assert 'precision recall' in text
