import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns


def plot_confusion_matrix(cm: pd.DataFrame, path: str, title: str = "Confusion Matrix"):
    """Raw counts next to the row-normalized matrix."""
    counts = cm.to_numpy()
    with np.errstate(divide='ignore', invalid='ignore'):
        cm_norm = np.nan_to_num(counts / counts.sum(axis=1, keepdims=True))
    class_names = list(cm.index)

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))

    sns.heatmap(counts, annot=True, fmt='d', cmap='Blues',
                xticklabels=class_names,
                yticklabels=class_names, ax=ax1,
                annot_kws={'size': 8})
    ax1.set_xlabel('Predicted')
    ax1.set_ylabel('True')
    ax1.set_title(f'{title} (Raw Counts)')

    sns.heatmap(cm_norm, annot=True, fmt='.1%', cmap='Blues',
                xticklabels=class_names,
                yticklabels=class_names, ax=ax2,
                annot_kws={'size': 8})
    ax2.set_xlabel('Predicted')
    ax2.set_ylabel('True')
    ax2.set_title(f'{title} (Normalized by True Label)')

    plt.tight_layout()
    plt.savefig(path, bbox_inches='tight', dpi=150)
    plt.close(fig)
    return path


def plot_correlation_matrix(corr: pd.DataFrame, path: str, method: str = "spearman"):
    fig, ax = plt.subplots(figsize=(14, 12))
    sns.heatmap(corr, cmap='coolwarm', center=0, vmin=-1, vmax=1,
                xticklabels=True, yticklabels=True, ax=ax)
    ax.tick_params(labelsize=5)
    ax.set_title(f'Predictor Correlation ({method.capitalize()})')
    plt.tight_layout()
    plt.savefig(path, bbox_inches='tight', dpi=150)
    plt.close(fig)
    return path


def plot_mtry_accuracy(cv_table: pd.DataFrame, best_mtry: int, path: str):
    """Cross-validation accuracy per candidate, the winner marked."""
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.errorbar(cv_table['mtry'], cv_table['accuracy'], yerr=cv_table['accuracy_sd'],
                marker='o', capsize=3)
    best = cv_table[cv_table['mtry'] == best_mtry]
    ax.scatter(best['mtry'], best['accuracy'], color='red', zorder=3, s=80,
               label=f'best mtry = {best_mtry}')
    ax.set_xlabel('Randomly Selected Predictors (mtry)')
    ax.set_ylabel('Accuracy (Repeated Cross-Validation)')
    ax.set_xticks(list(cv_table['mtry']))
    ax.grid(True, alpha=0.3)
    ax.legend(loc='lower right')
    plt.tight_layout()
    plt.savefig(path, bbox_inches='tight', dpi=150)
    plt.close(fig)
    return path


def plot_variable_importance(importance: pd.Series, path: str, top_n: int = 20):
    top = importance.sort_values(ascending=False).head(top_n)
    fig, ax = plt.subplots(figsize=(8, max(4, 0.3 * len(top))))
    sns.barplot(x=top.values, y=top.index, color='steelblue', ax=ax)
    ax.set_xlabel('Mean Decrease in Gini')
    ax.set_ylabel('')
    ax.set_title('Variable Importance')
    plt.tight_layout()
    plt.savefig(path, bbox_inches='tight', dpi=150)
    plt.close(fig)
    return path


def plot_pca_variance(cumulative_variance: np.ndarray, n_components: int,
                      variance_target: float, path: str):
    fig, ax = plt.subplots(figsize=(8, 5))
    x = np.arange(1, len(cumulative_variance) + 1)
    ax.plot(x, cumulative_variance, marker='.')
    ax.axhline(variance_target, color='k', linestyle='--', lw=1)
    ax.axvline(n_components, color='red', linestyle=':', lw=1,
               label=f'{n_components} components')
    ax.set_xlabel('Principal Component')
    ax.set_ylabel('Cumulative Explained Variance')
    ax.set_ylim([0.0, 1.02])
    ax.legend(loc='lower right')
    ax.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, bbox_inches='tight', dpi=150)
    plt.close(fig)
    return path
