"""Run evaluation

Script to compute summary statistics and create plots of the experimental results. Should be run
after the experimental pipeline, as this script requires the pipeline's outputs as inputs.

Usage: python -m run_evaluation --help
"""


import argparse
import pathlib

import matplotlib.pyplot as plt
import pandas as pd

import data_handling


plt.rcParams['font.size'] = 12


# Main-routine: Run complete evaluation pipeline. To this end, read results from the "results_dir"
# and some dataset information from "data_dir". Save plots to the "plot_dir". Print some statistics
# to the console.
def evaluate(data_dir: pathlib.Path, results_dir: pathlib.Path, plot_dir: pathlib.Path) -> None:
    if not results_dir.is_dir():
        raise FileNotFoundError('The results directory does not exist.')
    if not plot_dir.is_dir():
        print('The plot directory does not exist. We create it.')
        plot_dir.mkdir(parents=True)
    if any(plot_dir.glob('*.pdf')):
        print('The plot directory is not empty. Files might be overwritten but not deleted.')

    results = data_handling.load_results(directory=results_dir)

    # Define column list for evaluation:
    evaluation_metrics = ['mining_time', 'n_candidates', 'train_wracc', 'test_wracc']

    # Compute further evaluation metrics:
    results['wracc_train_test_diff'] = results['train_wracc'] - results['test_wracc']
    results['candidates_per_second'] = results['n_candidates'] / results['mining_time']

    print('\n---- Overview ----')

    print('\nHow many searches did not find any subgroup or ran into the time limit?')
    print(results.groupby('search_name').agg(
        no_subgroup=('n_result_subgroups', lambda x: (x == 0).sum()),
        timed_out=('timed_out', 'sum'), total=('timed_out', 'size')))

    print('\nHow are the mean values of evaluation metrics distributed over search settings?')
    print(results.groupby('search_name')[evaluation_metrics].mean().round(3))

    print('\nHow is the difference "train - test" in WRAcc distributed?')
    print(results.groupby('search_name')['wracc_train_test_diff'].describe().transpose().round(3))

    print('\nWhich fraction of best subgroups is significant (compared to random subgroups)?')
    print(results.groupby('search_name')['is_significant'].mean().round(3))

    print('\n---- Search depth ----')

    print('\nHow are the mean values of evaluation metrics distributed over search depth?')
    for metric in evaluation_metrics:
        print(results.groupby(['search_name', 'param.search_depth'])[metric].mean().reset_index(
            ).pivot(index='param.search_depth', columns='search_name').round(3))

    print('\n---- Numeric strategies (beam search) ----')

    beam_results = results[results['search_name'] == 'Beam']
    print('\nHow are the mean values of evaluation metrics distributed over numeric strategies and',
          'quality measures?')
    print(beam_results.groupby(['param.numeric_strategy', 'param.quality_measure'])[
        evaluation_metrics].mean().round(3))

    print('\nHow is the runtime Spearman-correlated to dataset size?')
    dataset_overview = data_handling.load_dataset_overview(directory=data_dir)
    dataset_overview = dataset_overview[['dataset', 'n_instances', 'n_features']]
    print_results = dataset_overview.rename(columns={'n_instances': 'm', 'n_features': 'n'})
    print_results['n*m'] = print_results['n'] * print_results['m']
    print_results = print_results.merge(
        beam_results[['dataset_name', 'param.numeric_strategy', 'mining_time']].rename(
            columns={'dataset_name': 'dataset'})).drop(columns='dataset')
    print(print_results.groupby('param.numeric_strategy').corr(method='spearman').round(2))

    # Figure 1: Test WRAcc per search setting
    plot_results = results[results['test_wracc'].notna()]
    search_names = sorted(plot_results['search_name'].unique())
    fig, ax = plt.subplots(figsize=(5, 4))
    ax.boxplot([plot_results.loc[plot_results['search_name'] == search_name, 'test_wracc']
                for search_name in search_names], labels=search_names)
    ax.set_xlabel('Search setting')
    ax.set_ylabel('Test-set WRAcc')
    fig.tight_layout()
    fig.savefig(plot_dir / 'test-wracc-search.pdf')
    plt.close(fig)

    # Figure 2: Mining time over numeric strategies and search depth (beam search)
    plot_results = beam_results.groupby(['param.search_depth', 'param.numeric_strategy'])[
        'mining_time'].mean().reset_index().pivot(index='param.search_depth',
                                                  columns='param.numeric_strategy')
    plot_results.columns = plot_results.columns.droplevel(0)
    fig, ax = plt.subplots(figsize=(5, 4))
    for numeric_strategy in plot_results.columns:
        ax.plot(plot_results.index, plot_results[numeric_strategy], marker='o',
                label=numeric_strategy)
    ax.set_xlabel('Search depth')
    ax.set_ylabel('Mean mining time (s)')
    ax.set_yscale('log')
    ax.legend(title='Numeric strategy')
    fig.tight_layout()
    fig.savefig(plot_dir / 'mining-time-depth.pdf')
    plt.close(fig)

    # Figure 3: Training vs. test WRAcc of the best subgroups
    plot_results = results[results['test_wracc'].notna()]
    fig, ax = plt.subplots(figsize=(5, 4))
    for search_name, search_results in plot_results.groupby('search_name'):
        ax.scatter(search_results['train_wracc'], search_results['test_wracc'], s=10,
                   label=search_name)
    limits = [min(ax.get_xlim()[0], ax.get_ylim()[0]), max(ax.get_xlim()[1], ax.get_ylim()[1])]
    ax.plot(limits, limits, color='gray', linestyle='--')
    ax.set_xlabel('Training-set WRAcc')
    ax.set_ylabel('Test-set WRAcc')
    ax.legend()
    fig.tight_layout()
    fig.savefig(plot_dir / 'train-test-wracc.pdf')
    plt.close(fig)

    print('\nHow often is each description found as best subgroup (top 10)?')
    print(pd.Series(results['best_conditions']).value_counts().head(10))


# Parse some command-line arguments and run the main routine.
if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Creates plots and prints statistics.',
                                     formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument('-d', '--data', type=pathlib.Path, default='data/datasets/',
                        dest='data_dir', help='Directory with datasets in (X, y) form.')
    parser.add_argument('-r', '--results', type=pathlib.Path, default='data/results/',
                        dest='results_dir', help='Directory with experimental results.')
    parser.add_argument('-p', '--plots', type=pathlib.Path, default='data/plots/',
                        dest='plot_dir', help='Output directory for plots.')
    print('Evaluation started.\n')
    evaluate(**vars(parser.parse_args()))
    print('\nEvaluation finished. Plots created and saved.')
