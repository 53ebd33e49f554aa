# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
import csv
from pathlib import Path
from typing import List, Optional
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# We wrap the settings import in a try-except block to provide a nicer
# error message if the environment holds invalid values.
try:
    from .config import settings
except Exception as e:
    console = Console()
    console.print(Panel(
        f"[bold red]Configuration Error:[/bold red]\n{e}\n\nPlease check your .env file and the [bold cyan]PYOMOPCODESET_*[/bold cyan] environment variables.",
        title="[bold red]Initialization Failed[/bold red]",
        border_style="red"
    ))
    raise SystemExit(1)

from neo4j import GraphDatabase

from .codeset import CodeSetBuilder
from .exceptions import CodeSetError
from .hierarchy import HierarchyResolver
from .loader import Neo4jLoader
from .models import BuildType, ComboFilter, Domain
from .parser import AthenaParser
from .search import ConceptSearcher
from .store import get_store


app = typer.Typer(
    name="py-omop-codeset",
    help="Search an OMOP vocabulary, explore concept hierarchies and build code sets."
)
console = Console()


def _fail(message: str, title: str = "Error"):
    console.print(Panel(f"[bold red]{message}", title=f"[bold red]{title}[/bold red]"))
    raise typer.Exit(code=1)


def _table(title: str, columns: List[str], rows: List[List]) -> Table:
    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*["" if value is None else str(value) for value in row])
    return table


@app.command(name="full-import", help="Generate CSVs and command for a one-time Neo4j bulk import.")
def full_import(
    vocab_dir: Path = typer.Option(
        None,
        "--vocab-dir",
        "-d",
        help="Directory holding the Athena export. Defaults to PYOMOPCODESET_VOCAB_DIR."
    )
):
    """
    Generates the CSV files and the neo4j-admin command for a bulk import.
    After running the printed command, run `init-schema`.
    """
    vocab_dir = vocab_dir or Path(settings.vocab_dir)
    console.print(Panel(f"[bold cyan]Starting Neo4j bulk import preparation from {vocab_dir}[/bold cyan]", border_style="cyan"))
    try:
        Neo4jLoader().run_bulk_import(vocab_dir)
    except Exception as e:
        console.print_exception()
        _fail(f"An error occurred during the bulk import process: {e}")


@app.command(name="init-schema", help="Create constraints and indexes after a successful bulk import.")
def init_schema():
    console.print(Panel("[bold cyan]Initializing Neo4j schema[/bold cyan]", border_style="cyan"))
    driver = None
    try:
        driver = GraphDatabase.driver(settings.neo4j_uri, auth=(settings.neo4j_user, settings.neo4j_password))
        Neo4jLoader(driver=driver).ensure_schema()
        console.print(Panel(
            "[bold green]Schema initialized. The database is ready to serve queries.[/bold green]",
            title="[bold green]Schema Initialized[/bold green]"
        ))
    except Exception as e:
        console.print_exception()
        _fail(f"Failed to initialize schema: {e}")
    finally:
        if driver:
            driver.close()


@app.command(name="load", help="Load an Athena export straight into Neo4j over Bolt (small vocabularies).")
def load(
    vocab_dir: Path = typer.Option(
        None,
        "--vocab-dir",
        "-d",
        help="Directory holding the Athena export. Defaults to PYOMOPCODESET_VOCAB_DIR."
    )
):
    vocab_dir = vocab_dir or Path(settings.vocab_dir)
    console.print(Panel(f"[bold cyan]Loading {vocab_dir} into {settings.neo4j_uri}[/bold cyan]", border_style="cyan"))
    driver = None
    try:
        data = AthenaParser(vocab_dir).parse_files()
        driver = GraphDatabase.driver(settings.neo4j_uri, auth=(settings.neo4j_user, settings.neo4j_password))
        Neo4jLoader(driver=driver).load_vocabulary(data)
        console.print(Panel(
            f"[bold green]Loaded {len(data.concepts)} concepts.[/bold green]",
            title="[bold green]Vocabulary Loaded[/bold green]"
        ))
    except Exception as e:
        console.print_exception()
        _fail(f"Failed to load the vocabulary: {e}")
    finally:
        if driver:
            driver.close()


@app.command(name="search", help="Search concepts by name, code or id within a domain.")
def search(
    term: str = typer.Argument(..., help="Text to search for (at least 2 characters)."),
    domain: Domain = typer.Option(..., "--domain", "-D", help="Clinical domain to search in."),
):
    try:
        rows = ConceptSearcher(get_store()).search(term, domain)
    except CodeSetError as e:
        _fail(e.message)
    console.print(_table(
        f"Search results for '{term}' ({domain.value})",
        ["Concept ID", "Code", "Vocabulary", "Name", "Standard ID", "Standard Code", "Standard Vocabulary"],
        [
            [r.searched_concept_id, r.searched_code, r.searched_vocabulary, r.search_result,
             r.std_concept_id, r.standard_code, r.standard_vocabulary]
            for r in rows
        ],
    ))


@app.command(name="hierarchy", help="Show the ancestors and descendants of a concept.")
def hierarchy(concept_id: int = typer.Argument(..., help="Concept id to explore.")):
    try:
        nodes = HierarchyResolver(get_store()).resolve(concept_id)
    except CodeSetError as e:
        _fail(e.message)
    root_term = nodes[0].root_term if nodes else str(concept_id)
    console.print(_table(
        f"Hierarchy of {root_term}",
        ["Steps Away", "Concept ID", "Code", "Vocabulary", "Class", "Name"],
        [[n.steps_away, n.concept_id, n.concept_code, n.vocabulary_id, n.concept_class_id, n.concept_name] for n in nodes],
    ))


@app.command(name="codeset", help="Build a deduplicated code set from one or more anchor concepts.")
def codeset(
    concept_ids: List[int] = typer.Argument(..., help="Anchor concept ids."),
    combo_filter: ComboFilter = typer.Option(ComboFilter.ALL, "--combo", "-c", help="Drug combination filter."),
    build_type: BuildType = typer.Option(BuildType.HIERARCHICAL, "--build-type", "-b", help="Build strategy."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the code set to this CSV file."),
):
    try:
        rows = CodeSetBuilder(get_store()).build(list(concept_ids), combo_filter, build_type)
    except CodeSetError as e:
        _fail(e.message)

    if output:
        with open(output, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow([
                "root_concept_name", "child_vocabulary_id", "child_code", "child_name",
                "child_concept_id", "concept_class_id", "combination_flag", "dose_form", "dose_form_group",
            ])
            for r in rows:
                writer.writerow([
                    r.root_concept_name, r.child_vocabulary_id, r.child_code, r.child_name,
                    r.child_concept_id, r.concept_class_id,
                    r.combination_flag.value if r.combination_flag else "", r.dose_form or "", r.dose_form_group or "",
                ])
        console.print(f"[green]Wrote {len(rows)} codes to {output}[/green]")
        return

    console.print(_table(
        f"Code set ({len(rows)} codes)",
        ["Root", "Vocabulary", "Code", "Name", "Concept ID", "Class", "Combination", "Dose Form Group"],
        [
            [r.root_concept_name, r.child_vocabulary_id, r.child_code, r.child_name, r.child_concept_id,
             r.concept_class_id, r.combination_flag.value if r.combination_flag else None, r.dose_form_group]
            for r in rows
        ],
    ))


@app.command(name="serve", help="Run the HTTP API.")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address. Defaults to PYOMOPCODESET_API_HOST."),
    port: Optional[int] = typer.Option(None, "--port", help="Port. Defaults to PYOMOPCODESET_API_PORT."),
):
    import uvicorn
    from .api import create_app

    console.print(Panel(f"[bold cyan]Serving py-omop-codeset on {host or settings.api_host}:{port or settings.api_port}[/bold cyan]", border_style="cyan"))
    uvicorn.run(create_app(), host=host or settings.api_host, port=port or settings.api_port)


if __name__ == "__main__":
    app()
