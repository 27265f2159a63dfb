#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Result reporting for the dictionaries returned by BagOfFeatures.evaluate().
'''
import os

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns


def normalized_confusion(cm):
    '''Row normalized confusion matrix, rows of classes without images stay zero.'''
    cm = np.asarray(cm, dtype=np.float64)
    totals = cm.sum(axis=1, keepdims=True)
    return np.divide(cm, totals, out=np.zeros_like(cm), where=totals > 0)


def plot_confusion_matrix(results, results_path, filename='confusion_matrix.png', plot_title=None,
                          normalize=False, cmap='Blues'):
    '''
    results:        output of BagOfFeatures.evaluate()
    results_path:   directory the figure is written to
    normalize:      plot per class recall instead of image counts
    '''
    classes = results['class_names']
    cm = results['confusion_matrix']
    if normalize:
        cm = normalized_confusion(cm)
    if plot_title is None:
        plot_title = f"Confusion matrix (Acc: {results['accuracy']:.3f})"

    size = len(classes)
    fig, ax = plt.subplots(figsize=(max(8, size), max(6, size * 0.8)))
    sns.heatmap(cm, annot=size <= 30, fmt='.2f' if normalize else 'd', cmap=cmap,
                xticklabels=classes, yticklabels=classes, ax=ax)
    ax.set_title(plot_title)
    ax.set_ylabel('True label')
    ax.set_xlabel('Predicted label')
    fig.tight_layout()

    full_path = os.path.join(results_path, filename)
    fig.savefig(full_path)
    plt.close(fig)
    print(f"Saved confusion matrix to {full_path}")
    return full_path


def write_results(path, title, results, split_accuracies=None, codebook_size=None):
    with open(path, 'w') as f:
        f.write(f"--- {title} ---\n")
        if codebook_size is not None:
            f.write(f"Codebook size: {codebook_size}\n")
        f.write(f"Accuracy: {results['accuracy']:.4f}\n")
        if split_accuracies:
            f.write("\nPer class accuracy:\n")
            for (name, split), acc in split_accuracies.items():
                f.write(f"  {name} [{split}]: {acc:.4f}\n")
        f.write(f"\nReport:\n{results['report']}\n")
        f.write(f"\nCM:\n{np.array2string(np.asarray(results['confusion_matrix']))}\n")
    print(f"Saved results to {path}")
