# spendlens/cli.py
import logging
import os

import click

from spendlens.categorize import (
    classify_knn_in_place,
    generate_categories,
    run_categorize,
    run_train_knn,
    run_train_neural,
)
from spendlens.classifiers import build_classifier, select_classifier
from spendlens.config import Settings, ensure_config_file, load_config, set_categories
from spendlens.evaluate import comparison_table, evaluate
from spendlens.exceptions import SpendLensError
from spendlens.ingest import run_ingest
from spendlens.storage import read_transactions
from spendlens.summary import run_summary

logger = logging.getLogger(__name__)


class SpendLensGroup(click.Group):
    """Report library errors on stderr and exit 1 instead of a traceback."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except SpendLensError as exc:
            logger.debug("Command failed", exc_info=True)
            click.echo(f"Error: {exc}", err=True)
            ctx.exit(1)


def _configure_logging() -> None:
    level = os.environ.get("SPENDLENS_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="%(message)s")


def _classifier_names(settings, rules, passthrough, emb, ai, chain):
    if chain:
        return [name.strip() for name in chain.split(",") if name.strip()]
    flags = settings.classifier_flags
    return [select_classifier(
        rules=rules or flags.get("rules", False),
        passthrough=passthrough or flags.get("pass", False),
        embeddings=emb or flags.get("emb", False),
        ai=ai or flags.get("ai", False),
    )]


def classifier_options(func):
    options = [
        click.option("--rules", is_flag=True, default=False, help="Keyword rules from config.yaml."),
        click.option("--pass", "passthrough", is_flag=True, default=False,
                     help="Use the category the bank export carries."),
        click.option("--emb", is_flag=True, default=False,
                     help="Nearest category label by sentence embedding."),
        click.option("--ai", is_flag=True, default=False, help="Ask an LLM for each transaction."),
        click.option("--chain", default=None,
                     help="Comma-separated fallback chain, e.g. rules,knn,ai (overrides flags)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group(cls=SpendLensGroup)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file with settings and API keys.'
)
@click.option(
    '--data-dir', 'data_dir',
    default=None,
    type=click.Path(file_okay=False),
    help='Directory holding transactions, summary and config.yaml (default: $DATA_DIR or ./data).'
)
@click.pass_context
def main(ctx, env_file, data_dir):
    """
    Import bank exports, categorize transactions and build the spending
    summary served by the dashboard.
    """
    settings = Settings.from_env(env_file)
    _configure_logging()
    if data_dir:
        settings = settings.with_data_dir(data_dir)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    ensure_config_file(settings.config_path)
    ctx.obj = settings


@main.command()
@click.option('--format', 'fmt', default=None,
              help='Force one importer (moneyhub, monzo, qfx, qif) instead of detection.')
@click.pass_obj
def ingest(settings, fmt):
    """Parse every file in the import directory into transactions.json."""
    result = run_ingest(settings, format_override=fmt)
    click.echo(f"Saved {len(result.transactions)} transaction(s) to {settings.transactions_path}.")


@main.command()
@classifier_options
@click.pass_obj
def categorize(settings, rules, passthrough, emb, ai, chain):
    """Assign a category to every ingested transaction."""
    names = _classifier_names(settings, rules, passthrough, emb, ai, chain)
    categorized = run_categorize(settings, names)
    click.echo(f"Categorized {len(categorized)} transaction(s) with {', '.join(names)}.")


@main.command()
@click.option('--currency', default=None, help='Currency code for the console report.')
@click.option('--start-month', default=None, help='First month to include (YYYY-MM).')
@click.option('--end-month', default=None, help='Last month to include (YYYY-MM).')
@click.pass_obj
def summary(settings, currency, start_month, end_month):
    """Build summary.json from the categorized transactions."""
    result = run_summary(settings, currency=currency, start_month=start_month, end_month=end_month)
    click.echo(f"Wrote summary for {len(result['yearly_summary'])} year(s) to {settings.summary_path}.")


@main.command()
@click.option('--classifier', default=None,
              help='Classifier or comma-separated chain; defaults to the importers\' choice.')
@click.option('--format', 'fmt', default=None, help='Force one importer instead of detection.')
@click.pass_obj
def run(settings, classifier, fmt):
    """Ingest, categorize and summarize in one go."""
    result = run_ingest(settings, format_override=fmt)
    click.echo(f"Ingested {len(result.transactions)} transaction(s).")
    if classifier:
        names = _classifier_names(settings, False, False, False, False, classifier)
    elif len(result.default_classifiers) == 1:
        names = list(result.default_classifiers)
    else:
        names = _classifier_names(settings, False, False, False, False, None)
    categorized = run_categorize(settings, names)
    click.echo(f"Categorized {len(categorized)} transaction(s) with {', '.join(names)}.")
    run_summary(settings)
    click.echo("Upload & processing complete")


@main.command('train-knn')
@click.option('--k', default=5, show_default=True, type=int, help='Neighbours per vote.')
@click.pass_obj
def train_knn_cmd(settings, k):
    """Train the Embed+KNN model on the categorized transactions."""
    model = run_train_knn(settings, k=k)
    click.echo(f"Embed+KNN model with {len(model.labels)} example(s) saved to {settings.knn_model_dir}.")


@main.command('classify-knn')
@click.pass_obj
def classify_knn_cmd(settings):
    """Re-classify the categorized transactions with the Embed+KNN model."""
    updated = classify_knn_in_place(settings)
    click.echo(f"Classified {len(updated)} transaction(s). Updated {settings.categorized_path}.")


@main.command('train-nn')
@click.option('--epochs', default=20, show_default=True, type=int)
@click.pass_obj
def train_nn_cmd(settings, epochs):
    """Train the neural-network classifier on the categorized transactions."""
    model = run_train_neural(settings, epochs=epochs)
    click.echo(f"Trained model with {len(model.classes_)} classes saved to {settings.nn_model_dir}.")


@main.command('generate-categories')
@click.pass_obj
def generate_categories_cmd(settings):
    """Rebuild config.yaml categories from the categorized transactions."""
    transactions = read_transactions(settings.categorized_path, required=True)
    categories = generate_categories(transactions)
    set_categories(settings.config_path, categories)
    click.echo(f"Generated {len(categories)} categories in {settings.config_path}.")


@main.command('evaluate')
@click.option('--sample', 'sample_size', default=100, show_default=True, type=int)
@click.option('--classifiers', 'names', default='rules,knn,ai', show_default=True,
              help='Comma-separated classifiers to compare.')
@click.pass_obj
def evaluate_cmd(settings, sample_size, names):
    """Compare classifiers against the bank's own categories."""
    transactions = read_transactions(settings.transactions_path, required=True)
    config = load_config(settings.config_path)
    wanted = [n.strip() for n in names.split(",") if n.strip()]
    if "ai" in wanted and not settings.openai_api_key \
            and os.environ.get("SPENDLENS_LLM_PROVIDER", "openai").lower() == "openai":
        click.echo("Skipping AI-based (no OPENAI_API_KEY)")
        wanted.remove("ai")
    classifiers = [build_classifier(n, config, settings) for n in wanted]
    results = evaluate(transactions, classifiers, sample_size=sample_size)
    click.echo("\n=== Classifier Comparison ===")
    click.echo(comparison_table(results))


@main.command()
@click.option('--host', default='127.0.0.1', show_default=True)
@click.option('--port', default=None, type=int, help='Defaults to $PORT or 3000.')
@click.pass_obj
def serve(settings, host, port):
    """Serve the dashboard."""
    import uvicorn

    from webapp.main import create_app

    port = port or settings.port
    click.echo(f"Server listening at http://{host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port)


if __name__ == "__main__":
    main()
