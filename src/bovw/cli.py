#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Command line tool running the whole pipeline on a directory with one sub-directory of images per class.
'''
import argparse
import os
import sys

from .config import BoFParameters, load_parameters
from .dataset import load_manifest, manifest_from_yaml
from .pipeline import BagOfFeatures
from .report import plot_confusion_matrix, write_results


def build_parser():
    parser = argparse.ArgumentParser(description='Bag of Visual Words image classification')
    parser.add_argument('data_dir',
        help='directory with one sub-directory of images per class, or a YAML manifest')
    parser.add_argument('out_dir',
        help='directory where the codebook, model and results are written')
    parser.add_argument('-c', '--config', action='store',
        help='YAML file with pipeline parameters', default=None)
    parser.add_argument('-f', '--feature_type', action='store',
        help='local feature type', choices=['sift', 'orb', 'surf'], default=None)
    parser.add_argument('-k', type=int, action='store',
        help='number of visual words (initial size when searching)', default=None)
    parser.add_argument('--cluster_type', action='store',
        help='clustering backend', choices=['minibatch', 'kmeans', 'opencv'], default=None)
    parser.add_argument('--classifier', action='store',
        help='classifier backend', choices=['libsvm', 'opencv', 'xgboost'], default=None)
    parser.add_argument('--steps', type=int, action='store',
        help='number of codebook sizes to try (0 disables the search)', default=None)
    parser.add_argument('--repeat', type=int, action='store',
        help='clustering repeats per codebook size', default=None)
    parser.add_argument('--step', type=int, action='store',
        help='codebook size increment between steps', default=None)
    parser.add_argument('--valid', type=float, action='store',
        help='fraction of every class used for validation (default 0.2)', default=0.2)
    parser.add_argument('--test', type=float, action='store',
        help='fraction of every class used for testing (default 0.2)', default=0.2)
    parser.add_argument('--features', action='store',
        help='HDF5 descriptor cache, read when it exists and written otherwise', default=None)
    parser.add_argument('-j', '--n_jobs', type=int, action='store',
        help='parallel jobs for extraction and encoding (default from config)', default=None)
    parser.add_argument('-q', '--quiet', action='store_true',
        help='only print warnings and results', default=False)
    return parser


def parameters_from_args(args):
    params = load_parameters(args.config) if args.config else BoFParameters()
    overrides = {
        'feature_type': args.feature_type,
        'cluster_type': args.cluster_type,
        'classifier_type': args.classifier,
        'n_jobs': args.n_jobs,
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    if args.k is not None:
        params.clust_params.num_clusters = args.k
    opt = {'num_steps': args.steps, 'cluster_repeat': args.repeat, 'cluster_step': args.step}
    params.opt_params.update({k: v for k, v in opt.items() if v is not None})
    if args.quiet:
        params.verbose = False
    params.validate()
    return params


def run(args):
    params = parameters_from_args(args)

    if os.path.isfile(args.data_dir):
        datasets = manifest_from_yaml(args.data_dir)
    else:
        datasets = load_manifest(args.data_dir, valid_fraction=args.valid, test_fraction=args.test,
                                 random_state=params.clust_params.random_state)
    print(f"Loaded {len(datasets)} classes from {args.data_dir}")
    for d in datasets:
        print(f"  {d.name}: train={d.size('train')} valid={d.size('valid')} test={d.size('test')}")

    os.makedirs(args.out_dir, exist_ok=True)
    bof = BagOfFeatures(params, datasets)

    if args.features and os.path.exists(args.features):
        print(f"Loading descriptors from {args.features}")
        bof.load_features(args.features)
    else:
        bof.extract_features()
        if args.features:
            bof.save_features(args.features)

    bof.build_bof()
    bof.train()

    accuracies = bof.test_dataset()
    results = bof.evaluate('test')
    print(f"Test accuracy: {results['accuracy']:.4f}")
    print(f"Classification Report:\n{results['report']}")
    print(f"Confusion Matrix:\n{results['confusion_matrix']}")

    plot_confusion_matrix(results, args.out_dir,
                          plot_title=f"CM for BoVW {params.feature_type.upper()} K={bof.codebook.size} "
                                     f"(Acc: {results['accuracy']:.3f})")
    plot_confusion_matrix(results, args.out_dir, filename='confusion_matrix_normalized.png', normalize=True)
    write_results(os.path.join(args.out_dir, 'results.txt'), f"BoVW {params.feature_type.upper()} results", results,
                  split_accuracies=accuracies, codebook_size=bof.codebook.size)
    bof.save(args.out_dir)
    return results


def main(argv=None):
    """
    Entry point of the bovw command.
    """
    args = build_parser().parse_args(argv)
    print("Starting the Image Classification Pipeline...")
    try:
        run(args)
    except Exception as e:
        print(f"An error occurred: {e}", file=sys.stderr)
        return 1
    print("Pipeline completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
