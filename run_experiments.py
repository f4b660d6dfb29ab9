"""Run experiments

Script to run the complete experimental pipeline. Should be run after dataset preparation, as the
experiments require datasets as inputs. Saves its results for evaluation. If some results already
exist, only runs the missing experimental tasks.

Usage: python -m run_experiments --help
"""


import argparse
import itertools
import multiprocessing
import pathlib
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd
import tqdm

import data_handling
import sdsearch


# Different components of the experimental design.
N_FOLDS = 5  # cross-validation
SEARCH_DEPTHS = [1, 2, 3]
QUALITY_MEASURES = [sdsearch.QM.WRACC, sdsearch.QM.CHI_SQUARED]
BEAM_WIDTH = 10
N_RANDOM_SUBGROUPS = 100  # sample size for the significance threshold of the best subgroup
MAXIMUM_TIME = 5  # minutes per search


# Define a list of search settings, each comprising a name and a list of (dictionaries containing)
# parameter combinations used to initialize the search.
def define_search_settings() -> Sequence[Dict[str, Any]]:
    beam_args = [{'search_strategy': sdsearch.SearchStrategy.BEAM, 'search_depth': depth,
                  'numeric_strategy': numeric_strategy, 'quality_measure': quality_measure}
                 for depth, numeric_strategy, quality_measure in itertools.product(
                     SEARCH_DEPTHS, list(sdsearch.NumericStrategy), QUALITY_MEASURES)]
    cover_args = [{'search_strategy': sdsearch.SearchStrategy.COVER_BASED_BEAM_SELECTION,
                   'search_depth': depth, 'numeric_strategy': sdsearch.NumericStrategy.NUMERIC_BEST,
                   'maximum_post_processing_subgroups': BEAM_WIDTH}
                  for depth in SEARCH_DEPTHS]
    set_args = [{'search_strategy': sdsearch.SearchStrategy.BEAM, 'search_depth': depth,
                 'numeric_strategy': sdsearch.NumericStrategy.NUMERIC_INTERVALS,
                 'nominal_sets': True} for depth in SEARCH_DEPTHS]
    exhaustive_args = [{'search_strategy': sdsearch.SearchStrategy.BREADTH_FIRST,
                        'search_depth': depth,
                        'numeric_strategy': sdsearch.NumericStrategy.NUMERIC_BINS}
                       for depth in SEARCH_DEPTHS[:2]]
    return [
        {'search_name': 'Beam', 'search_args_list': beam_args},
        {'search_name': 'Cover', 'search_args_list': cover_args},
        {'search_name': 'Sets', 'search_args_list': set_args},
        {'search_name': 'Exhaustive', 'search_args_list': exhaustive_args}
    ]


# Define experimental tasks (for parallelization) as cross-product of datasets (from "data_dir"),
# cross-validation folds, and search settings (each including several parameter combinations).
# Only return tasks for which there is no results file in "results_dir". Provide a dictionary for
# calling "evaluate_experimental_task()".
def define_experimental_tasks(data_dir: pathlib.Path,
                              results_dir: pathlib.Path) -> Sequence[Dict[str, Any]]:
    experimental_tasks = []
    search_settings = define_search_settings()
    dataset_names = data_handling.list_datasets(directory=data_dir)
    for dataset_name, split_idx, search_setting in itertools.product(
            dataset_names, range(N_FOLDS), search_settings):
        results_file = data_handling.get_results_file_path(
            directory=results_dir, dataset_name=dataset_name, split_idx=split_idx,
            search_name=search_setting['search_name'])
        if not results_file.exists():
            experimental_tasks.append(
                {'dataset_name': dataset_name, 'data_dir': data_dir, 'results_dir': results_dir,
                 'split_idx': split_idx, **search_setting})
    return experimental_tasks


# Evaluate the conditions of a subgroup found on one table on another table (with the same columns).
def evaluate_conditions(conditions: sdsearch.ConditionList,
                        table: sdsearch.Table) -> np.ndarray:
    transferred_conditions = []
    for condition in conditions:
        transferred_condition = sdsearch.Condition(
            table.get_column(condition.get_column().get_name()), condition.get_operator())
        transferred_condition.set_value(condition.get_value())
        transferred_conditions.append(transferred_condition)
    return table.evaluate(transferred_conditions)


# Run one search on the training table and evaluate the best subgroup on training and test table.
# Return a dictionary with meta-data of the search and evaluation metrics of the best subgroup.
def run_search(train_table: sdsearch.Table, test_table: sdsearch.Table,
               search_args: Dict[str, Any]) -> Dict[str, Any]:
    target_concept = sdsearch.TargetConcept(sdsearch.TargetType.SINGLE_NOMINAL,
                                            primary_target=data_handling.TARGET_COLUMN)
    parameters = sdsearch.SearchParameters(
        target_concept=target_concept, search_strategy_width=BEAM_WIDTH,
        minimum_coverage=max(2, train_table.get_nr_rows() // 100), maximum_time=MAXIMUM_TIME,
        random_seed=25, **search_args)
    subgroup_discovery = sdsearch.SubgroupDiscovery(parameters, train_table)
    result = subgroup_discovery.mine()
    subgroup_set = subgroup_discovery.get_result()
    result['n_result_subgroups'] = len(subgroup_set)
    if subgroup_set.is_empty():
        return result
    best_subgroup = subgroup_set.get_best()
    y_train = train_table.get_column(data_handling.TARGET_COLUMN).get_values()
    y_test = test_table.get_column(data_handling.TARGET_COLUMN).get_values()
    test_members = evaluate_conditions(best_subgroup.get_conditions(), test_table)
    random_qualities = sdsearch.Validation(parameters, train_table).random_subgroups(
        N_RANDOM_SUBGROUPS)
    threshold = sdsearch.NormalDistribution(random_qualities).get_threshold(0.05)
    result['best_conditions'] = str(best_subgroup.get_conditions())
    result['best_depth'] = best_subgroup.get_depth()
    result['best_quality'] = best_subgroup.get_quality()
    result['quality_threshold'] = threshold
    result['is_significant'] = best_subgroup.get_quality() > threshold
    result['train_coverage'] = best_subgroup.get_coverage() / train_table.get_nr_rows()
    result['test_coverage'] = test_members.mean()
    result['train_wracc'] = sdsearch.wracc_np(y_true=y_train, y_pred=best_subgroup.get_members())
    result['test_wracc'] = sdsearch.wracc_np(y_true=y_test, y_pred=test_members)
    return result


# Evaluate one search setting on one split of one dataset. To this end, read in the dataset with
# the "dataset_name" from the "data_dir" and extract the "split_idx"-th split. "search_name" is an
# arbitrary (user-defined) name for the setting and "search_args_list" is a list of parameter
# combinations used to initialize the search, which will be tested sequentially.
# Return a DataFrame with various evaluation metrics, including parametrization of the search,
# runtime, and quality on training and test data. Additionally, save this data to "results_dir".
def evaluate_experimental_task(
        dataset_name: str, data_dir: pathlib.Path, results_dir: pathlib.Path, split_idx: int,
        search_name: str, search_args_list: Sequence[Dict[str, Any]]) -> pd.DataFrame:
    X, y = data_handling.load_dataset(dataset_name=dataset_name, directory=data_dir)
    train_idx, test_idx = list(data_handling.split_for_pipeline(X=X, y=y, n_splits=N_FOLDS))[
        split_idx]
    train_table = data_handling.create_table(X=X.iloc[train_idx], y=y.iloc[train_idx],
                                             name=f'{dataset_name}_{split_idx}_train')
    test_table = data_handling.create_table(X=X.iloc[test_idx], y=y.iloc[test_idx],
                                            name=f'{dataset_name}_{split_idx}_test',
                                            reference_table=train_table)
    results = []
    for search_args in search_args_list:
        result = run_search(train_table=train_table, test_table=test_table,
                            search_args=search_args)
        result['dataset_name'] = dataset_name
        result['split_idx'] = split_idx
        result['search_name'] = search_name
        for key, value in search_args.items():  # save all parameter values
            result[f'param.{key}'] = value.name if hasattr(value, 'name') else value
        results.append(result)
    results = pd.DataFrame(results)
    data_handling.save_results(results=results, directory=results_dir, dataset_name=dataset_name,
                               split_idx=split_idx, search_name=search_name)
    return results


# Main-routine: Run complete experimental pipeline. To this end, read datasets from "data_dir",
# save results to "results_dir". "n_processes" controls parallelization (over datasets,
# cross-validation folds, and search settings).
def run_experiments(data_dir: pathlib.Path, results_dir: pathlib.Path,
                    n_processes: Optional[int] = None) -> None:
    if not data_dir.is_dir():
        raise FileNotFoundError('Dataset directory does not exist.')
    if not results_dir.is_dir():
        print('Results directory does not exist. We create it.')
        results_dir.mkdir(parents=True)
    if any(results_dir.iterdir()):
        print('Results directory is not empty. Only missing experiments will be run.')
    experimental_tasks = define_experimental_tasks(data_dir=data_dir, results_dir=results_dir)
    progress_bar = tqdm.tqdm(total=len(experimental_tasks))
    process_pool = multiprocessing.Pool(processes=n_processes)
    results = [process_pool.apply_async(evaluate_experimental_task, kwds=task,
                                        callback=lambda x: progress_bar.update())
               for task in experimental_tasks]
    process_pool.close()
    process_pool.join()
    progress_bar.close()
    for result in results:
        result.get()  # re-raise exceptions of failed tasks
    results = data_handling.load_results(directory=results_dir)  # merge individual results files
    data_handling.save_results(results, directory=results_dir)


# Parse some command-line arguments and run the main routine.
if __name__ == '__main__':
    parser = argparse.ArgumentParser(
        description='Runs complete experimental pipeline except tasks that already have results.',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument('-d', '--data', type=pathlib.Path, default='data/datasets/',
                        dest='data_dir', help='Directory with input data, i.e., datasets in' +
                        ' (X, y) form.')
    parser.add_argument('-r', '--results', type=pathlib.Path, default='data/results/',
                        dest='results_dir', help='Directory for output data, i.e., experimental' +
                        ' results.')
    parser.add_argument('-p', '--processes', type=int, default=None, dest='n_processes',
                        help='Number of processes for parallelization (default: all cores).')
    print('Experimental pipeline started.')
    run_experiments(**vars(parser.parse_args()))
    print('Experimental pipeline executed successfully.')
