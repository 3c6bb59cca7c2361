#!/usr/bin/env python3
"""
LinkNest - personal bookmark manager

Command-line interface over the link store, the query engine, snapshot
backup/restore and AI suggestions.
"""
import sys
import argparse
import json
import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from linknest import codec
from linknest.config import init_config, get_config
from linknest.errors import LinkNestError, NotFoundError
from linknest.models import Folder, Link, LinkData, LinkUpdate
from linknest.query import QueryEngine, ScoredLink, SortMode
from linknest.stats import collection_stats, tag_counts
from linknest.store import LinkStore, open_store
from linknest.suggest import (
    HTTPLLMProvider, LLMConfig, SuggestionAdapter, SuggestionToken, apply_folder_suggestions
)
from linknest.utils import parse_tags

logger = logging.getLogger(__name__)


console = Console()

SHORT_ID = 8


def get_store(args) -> LinkStore:
    """Open the store selected by configuration; --db forces a database file."""
    config = get_config()
    if getattr(args, "db", None):
        config = replace(config, database=args.db, database_url=None, storage_backend="database")
    return open_store(config)


def resolve_link(store: LinkStore, ref: str) -> Link:
    """
    Find a link by full id or unique id prefix.

    Raises:
        NotFoundError: If nothing or more than one link matches
    """
    link = store.get_link(ref)
    if link is not None:
        return link
    matches = [link for link in store.links if link.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    raise NotFoundError("link", ref)


def resolve_folder(store: LinkStore, ref: Optional[str]) -> Optional[Folder]:
    """
    Find a folder by id, id prefix or name. None passes through.

    Raises:
        NotFoundError: If ref matches no folder
    """
    if ref is None:
        return None
    folder = store.find_folder(ref)
    if folder is not None:
        return folder
    matches = [folder for folder in store.folders if folder.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    raise NotFoundError("folder", ref)


def report_persist_error(store: LinkStore):
    if store.persist_error is not None:
        console.print(f"[yellow]Warning: {store.persist_error}[/yellow]")


def folder_names(store: LinkStore) -> dict:
    return {folder.id: folder.name for folder in store.folders}


def format_link(link: Link, folders: dict, score: Optional[int] = None) -> str:
    """Format a link as plain text."""
    tags = " ".join(f"#{tag}" for tag in link.tags)
    folder = f" [{folders[link.folder_id]}]" if link.folder_id in folders else ""
    score_text = f" ({score})" if score is not None else ""
    return f"{link.id[:SHORT_ID]}{folder} {link.title}{score_text}\n    {link.url}\n    {tags}"


def output_links(results: List[ScoredLink], store: LinkStore, format: str = "table",
                 title: str = "Links"):
    """Output query results in the specified format."""
    config = get_config()
    folders = folder_names(store)
    show_score = any(item.score is not None for item in results)

    if format == "table":
        table = Table(title=title)
        table.add_column("ID", style="cyan")
        table.add_column("Title", style="green")
        table.add_column("URL", style="blue")
        table.add_column("Tags", style="yellow")
        table.add_column("Folder", style="magenta")
        if show_score:
            table.add_column("Score", style="red", justify="right")

        for item in results:
            link = item.link
            row = [
                link.id[:SHORT_ID],
                link.title[:50],
                link.url[:50],
                ", ".join(link.tags)[:30],
                folders.get(link.folder_id, ""),
            ]
            if show_score:
                row.append(str(item.score))
            table.add_row(*row)

        console.print(table)
    elif format == "json":
        data = [item.to_dict() for item in results]
        print(json.dumps(data, indent=2 if config.export_pretty else None, ensure_ascii=False))
    elif format == "urls":
        for item in results:
            print(item.link.url)
    else:  # plain
        for item in results:
            print(format_link(item.link, folders, item.score))


def output_link_details(link: Link, store: LinkStore):
    details = Table(show_header=False, box=None)
    details.add_column("Field", style="cyan bold")
    details.add_column("Value", style="white")

    folder = store.get_folder(link.folder_id) if link.folder_id else None
    details.add_row("ID", link.id)
    details.add_row("URL", link.url)
    details.add_row("Title", link.title)
    details.add_row("Description", link.description or "(none)")
    details.add_row("Tags", ", ".join(link.tags) or "(none)")
    details.add_row("Folder", folder.name if folder else "(unfiled)")
    details.add_row("Created", link.created_at.strftime("%Y-%m-%d %H:%M:%S"))

    console.print(Panel(details, title=link.title[:60], border_style="blue"))


# =================
# LINK COMMANDS
# =================

def cmd_link_add(args):
    """Add a new link."""
    store = get_store(args)

    folder = resolve_folder(store, args.folder)
    data = LinkData(
        url=args.url,
        title=args.title or "",
        description=args.description or "",
        tags=parse_tags(args.tags),
        folder_id=folder.id if folder else None,
    )

    if args.suggest:
        adapter = _adapter()
        suggestion = adapter.suggest_details(args.url)
        if suggestion:
            data = suggestion.fill(data)
        elif not args.quiet:
            console.print(f"[yellow]Could not fetch suggestions: {adapter.last_error}[/yellow]")

    if not data.title:
        data = replace(data, title=args.url)

    link = store.add_link(data)
    report_persist_error(store)

    if args.quiet:
        print(link.id)
    else:
        output_links([ScoredLink(link)], store, args.output)


def _run_query(args, query: str):
    store = get_store(args)
    folder = resolve_folder(store, getattr(args, "folder", None))

    engine = QueryEngine(store)
    engine.set_folder(folder.id if folder else None)
    engine.set_tag(getattr(args, "tag", None))
    engine.set_query(query)
    if getattr(args, "sort", None):
        engine.set_sort(args.sort)

    results = engine.results()
    limit = getattr(args, "limit", None) or get_config().page_size
    if limit > 0:
        results = results[:limit]

    title = folder.name if folder else "All Links"
    if engine.tag:
        title += f" / #{engine.tag}"
    if engine.search_active:
        title += f" - search '{query.strip()}'"

    output_links(results, store, args.output, title=title)


def cmd_link_list(args):
    """List links through the query engine."""
    _run_query(args, args.search or "")


def cmd_link_search(args):
    """Search links, ordered by relevance unless --sort is given."""
    _run_query(args, args.query)


def cmd_link_get(args):
    """Show a single link."""
    store = get_store(args)
    link = resolve_link(store, args.id)

    if args.output == "table":
        output_link_details(link, store)
    else:
        output_links([ScoredLink(link)], store, args.output)


def cmd_link_update(args):
    """Update a link."""
    store = get_store(args)
    link = resolve_link(store, args.id)

    changes = {}
    if args.url:
        changes["url"] = args.url
    if args.title:
        changes["title"] = args.title
    if args.description is not None:
        changes["description"] = args.description

    # Tags: either full replacement or add/remove operations
    if args.tags is not None:
        changes["tags"] = parse_tags(args.tags)
    elif args.add_tags or args.remove_tags:
        new_tags = list(link.tags)
        for tag in parse_tags(args.add_tags):
            if tag not in new_tags:
                new_tags.append(tag)
        removed = set(parse_tags(args.remove_tags))
        changes["tags"] = [tag for tag in new_tags if tag not in removed]

    if args.unfile:
        changes["folder_id"] = None
    elif args.folder:
        changes["folder_id"] = resolve_folder(store, args.folder).id

    updated = store.update_link(link.id, LinkUpdate(**changes))
    report_persist_error(store)

    if not args.quiet:
        if updated is None:
            console.print(f"[yellow]Link {args.id} no longer exists[/yellow]")
        else:
            console.print(f"[green]Updated link {updated.id[:SHORT_ID]}[/green]")


def cmd_link_delete(args):
    """Delete links. Unknown ids are skipped."""
    store = get_store(args)

    deleted = 0
    for ref in args.ids:
        try:
            link = resolve_link(store, ref)
        except NotFoundError:
            if not args.quiet:
                console.print(f"[yellow]Link not found: {ref}[/yellow]")
            continue
        if store.delete_link(link.id):
            deleted += 1
    report_persist_error(store)

    if not args.quiet:
        console.print(f"[green]Deleted {deleted} link(s)[/green]")


# =================
# FOLDER COMMANDS
# =================

def cmd_folder_add(args):
    """Create a folder."""
    store = get_store(args)
    folder = store.add_folder(args.name)
    report_persist_error(store)

    if args.quiet:
        print(folder.id)
    else:
        console.print(f"[green]Created folder '{folder.name}' ({folder.id[:SHORT_ID]})[/green]")


def cmd_folder_list(args):
    """List folders with their link counts."""
    store = get_store(args)
    stats = collection_stats(store.links, store.folders)

    if args.output == "json":
        print(json.dumps(stats["folders"], indent=2, ensure_ascii=False))
        return

    table = Table(title="Folders")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Links", style="magenta", justify="right")
    for entry in stats["folders"]:
        table.add_row(entry["id"][:SHORT_ID], entry["name"], str(entry["links"]))
    console.print(table)
    console.print(f"Unfiled links: {stats['unfiled_links']}")


def cmd_folder_rename(args):
    """Rename a folder."""
    store = get_store(args)
    folder = resolve_folder(store, args.folder)
    store.update_folder(folder.id, args.name)
    report_persist_error(store)

    if not args.quiet:
        console.print(f"[green]Renamed '{folder.name}' to '{args.name}'[/green]")


def cmd_folder_delete(args):
    """Delete a folder. Its links are kept and become unfiled."""
    store = get_store(args)
    folder = resolve_folder(store, args.folder)

    affected = sum(1 for link in store.links if link.folder_id == folder.id)
    store.delete_folder(folder.id)
    report_persist_error(store)

    if not args.quiet:
        console.print(f"[green]Deleted folder '{folder.name}', {affected} link(s) moved to unfiled[/green]")


# =================
# TAGS & STATS
# =================

def cmd_tag_list(args):
    """List all tags with usage counts."""
    store = get_store(args)
    counts = tag_counts(store.links)

    if args.output == "json":
        print(json.dumps({tag: counts[tag] for tag in store.all_tags()}, indent=2, ensure_ascii=False))
        return

    table = Table(title="Tags")
    table.add_column("Tag", style="yellow")
    table.add_column("Links", style="magenta", justify="right")
    for tag in store.all_tags():
        table.add_row(tag, str(counts[tag]))
    console.print(table)


def cmd_stats(args):
    """Show collection statistics."""
    store = get_store(args)
    stats = collection_stats(store.links, store.folders)

    if args.output == "json":
        print(json.dumps(stats, indent=2, ensure_ascii=False))
        return

    table = Table(title="Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for key in ("total_links", "unique_tags", "total_folders", "unfiled_links"):
        table.add_row(key.replace("_", " ").title(), str(stats[key]))
    console.print(table)

    if stats["top_tags"]:
        top = Table(title="Top Tags")
        top.add_column("Tag", style="yellow")
        top.add_column("Links", style="magenta", justify="right")
        for entry in stats["top_tags"]:
            top.add_row(entry["name"], str(entry["count"]))
        console.print(top)


# =================
# IMPORT / EXPORT
# =================

def cmd_export(args):
    """Export all links and folders to a JSON backup."""
    store = get_store(args)
    path = Path(args.file) if args.file else Path(codec.backup_filename())

    codec.export_file(store, path, pretty=get_config().export_pretty)
    if not args.quiet:
        console.print(f"[green]Exported {len(store.links)} links and {len(store.folders)} folders to {path}[/green]")


def cmd_import(args):
    """Replace all links and folders with a JSON backup, after confirmation."""
    snapshot = codec.read_file(args.file)
    store = get_store(args)

    if not args.yes:
        console.print(
            f"Importing {len(snapshot.links)} links and {len(snapshot.folders)} folders from {args.file}.\n"
            f"[bold]This will overwrite all current links and folders "
            f"({len(store.links)} links, {len(store.folders)} folders).[/bold]"
        )
        if not Confirm.ask("Import?", default=False, console=console):
            console.print("[yellow]Import cancelled[/yellow]")
            return

    store.replace_all(snapshot)
    report_persist_error(store)

    if not args.quiet:
        console.print(f"[green]Imported {len(snapshot.links)} links and {len(snapshot.folders)} folders[/green]")


# =================
# SUGGESTIONS
# =================

def _adapter() -> SuggestionAdapter:
    return SuggestionAdapter(HTTPLLMProvider(LLMConfig.from_config(get_config())))


def cmd_suggest_details(args):
    """Suggest title, description and tags for a URL."""
    adapter = _adapter()
    suggestion = adapter.suggest_details(args.url)

    if suggestion is None:
        console.print(f"[yellow]No suggestions available: {adapter.last_error}[/yellow]")
        return

    if args.output == "json":
        print(json.dumps({
            "title": suggestion.title,
            "description": suggestion.description,
            "tags": suggestion.tags,
        }, indent=2, ensure_ascii=False))
        return

    details = Table(show_header=False, box=None)
    details.add_column("Field", style="cyan bold")
    details.add_column("Value", style="white")
    details.add_row("Title", suggestion.title or "(none)")
    details.add_row("Description", suggestion.description or "(none)")
    details.add_row("Tags", ", ".join(suggestion.tags) or "(none)")
    console.print(Panel(details, title=args.url[:60], border_style="magenta"))


def cmd_suggest_organize(args):
    """Suggest folders for unfiled links, optionally applying them."""
    store = get_store(args)
    links = store.unfiled_links()

    if not links:
        console.print("All links are already organized!")
        return
    if not store.folders:
        console.print("Please create at least one folder to get suggestions.")
        return

    adapter = _adapter()
    token = SuggestionToken()
    suggestions = adapter.suggest_folders(links, store.folders, token)

    if not suggestions:
        reason = f": {adapter.last_error}" if adapter.last_error else ""
        console.print(f"[yellow]No suggestions available right now{reason}[/yellow]")
        return

    folders = folder_names(store)
    table = Table(title="Folder Suggestions")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Suggested Folder", style="magenta")
    for suggestion in suggestions:
        link = store.get_link(suggestion.link_id)
        table.add_row(
            suggestion.link_id[:SHORT_ID],
            link.title[:50] if link else "",
            folders.get(suggestion.suggested_folder_id, "(none)"),
        )
    console.print(table)

    if args.apply:
        applied = apply_folder_suggestions(store, suggestions, token)
        report_persist_error(store)
        console.print(f"[green]Moved {applied} link(s) into folders[/green]")


# =================
# CONFIG
# =================

def cmd_config(args):
    """Manage configuration."""
    config = get_config()

    if args.action == "show":
        if args.key:
            if not hasattr(config, args.key):
                console.print(f"[red]Unknown config key: {args.key}[/red]")
                sys.exit(1)
            print(getattr(config, args.key))
        else:
            print(json.dumps(asdict(config), indent=2))

    elif args.action == "set":
        if not args.key or args.value is None:
            console.print("[red]config set needs a key and a value[/red]")
            sys.exit(1)
        try:
            config.set_value(args.key, args.value)
        except (KeyError, ValueError) as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)
        config.save()
        if not args.quiet:
            console.print(f"[green]Set {args.key} = {args.value}[/green]")

    elif args.action == "init":
        config_path = Path.home() / ".config" / "linknest" / "config.toml"
        config.save(config_path)
        console.print(f"[green]Created config at {config_path}[/green]")


def build_parser() -> argparse.ArgumentParser:
    """Build the grouped argument parser."""
    sort_choices = [mode.value for mode in SortMode]

    parser = argparse.ArgumentParser(
        description="LinkNest: a personal bookmark manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  linknest link add https://example.com --title "Example" --tags "web,demo"
  linknest link list --folder Reading --sort title-asc
  linknest link search "react hooks"
  linknest link update 3f2a --add-tags important --folder Reading
  linknest folder delete Reading

  linknest export backup.json
  linknest import backup.json --yes

  linknest suggest details https://example.com
  linknest suggest organize --apply

Configuration:
  Config file: ~/.config/linknest/config.toml or ./linknest.toml
  Environment: LINKNEST_DATABASE, LINKNEST_STORAGE_BACKEND, LINKNEST_LLM_MODEL
        """
    )

    parser.add_argument("--db", help="Database file (default: linknest.db)")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    parser.add_argument("-o", "--output", choices=["table", "json", "plain", "urls"],
                        help="Output format")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command groups")

    # =================
    # LINK GROUP
    # =================
    link_parser = subparsers.add_parser("link", help="Link operations")
    link_subparsers = link_parser.add_subparsers(dest="link_command", required=True)

    link_add = link_subparsers.add_parser("add", help="Add a link")
    link_add.add_argument("url", help="URL to save")
    link_add.add_argument("--title", "-t", help="Title (defaults to the URL)")
    link_add.add_argument("--description", "-d", help="Description")
    link_add.add_argument("--tags", help="Comma-separated tags")
    link_add.add_argument("--folder", "-f", help="Folder id or name")
    link_add.add_argument("--suggest", action="store_true",
                          help="Fill missing title, description and tags with AI suggestions")
    link_add.set_defaults(func=cmd_link_add)

    link_list = link_subparsers.add_parser("list", help="List links")
    link_list.add_argument("--folder", "-f", help="Only links in this folder")
    link_list.add_argument("--tag", help="Only links with this tag")
    link_list.add_argument("--search", "-s", help="Search text")
    link_list.add_argument("--sort", choices=sort_choices, help="Sort order (default: date-desc)")
    link_list.add_argument("--limit", "-n", type=int, help="Maximum number of results (default: page_size)")
    link_list.set_defaults(func=cmd_link_list)

    link_search = link_subparsers.add_parser("search", help="Search links")
    link_search.add_argument("query", help="Search text")
    link_search.add_argument("--folder", "-f", help="Only links in this folder")
    link_search.add_argument("--tag", help="Only links with this tag")
    link_search.add_argument("--sort", choices=sort_choices, help="Sort order (default: relevance)")
    link_search.add_argument("--limit", "-n", type=int, help="Maximum number of results (default: page_size)")
    link_search.set_defaults(func=cmd_link_search)

    link_get = link_subparsers.add_parser("get", help="Show a link")
    link_get.add_argument("id", help="Link id or id prefix")
    link_get.set_defaults(func=cmd_link_get)

    link_update = link_subparsers.add_parser("update", help="Update a link")
    link_update.add_argument("id", help="Link id or id prefix")
    link_update.add_argument("--url", help="New URL")
    link_update.add_argument("--title", "-t", help="New title")
    link_update.add_argument("--description", "-d", help="New description")
    link_update.add_argument("--tags", help="Replace all tags (comma-separated)")
    link_update.add_argument("--add-tags", help="Tags to add (comma-separated)")
    link_update.add_argument("--remove-tags", help="Tags to remove (comma-separated)")
    link_update.add_argument("--folder", "-f", help="Move to this folder")
    link_update.add_argument("--unfile", action="store_true", help="Remove from its folder")
    link_update.set_defaults(func=cmd_link_update)

    link_delete = link_subparsers.add_parser("delete", help="Delete links")
    link_delete.add_argument("ids", nargs="+", help="Link ids or id prefixes")
    link_delete.set_defaults(func=cmd_link_delete)

    # =================
    # FOLDER GROUP
    # =================
    folder_parser = subparsers.add_parser("folder", help="Folder operations")
    folder_subparsers = folder_parser.add_subparsers(dest="folder_command", required=True)

    folder_add = folder_subparsers.add_parser("add", help="Create a folder")
    folder_add.add_argument("name", help="Folder name")
    folder_add.set_defaults(func=cmd_folder_add)

    folder_list = folder_subparsers.add_parser("list", help="List folders")
    folder_list.set_defaults(func=cmd_folder_list)

    folder_rename = folder_subparsers.add_parser("rename", help="Rename a folder")
    folder_rename.add_argument("folder", help="Folder id or name")
    folder_rename.add_argument("name", help="New name")
    folder_rename.set_defaults(func=cmd_folder_rename)

    folder_delete = folder_subparsers.add_parser("delete", help="Delete a folder (links are kept)")
    folder_delete.add_argument("folder", help="Folder id or name")
    folder_delete.set_defaults(func=cmd_folder_delete)

    # =================
    # TAGS & STATS
    # =================
    tag_parser = subparsers.add_parser("tag", help="Tag operations")
    tag_subparsers = tag_parser.add_subparsers(dest="tag_command", required=True)
    tag_list = tag_subparsers.add_parser("list", help="List all tags")
    tag_list.set_defaults(func=cmd_tag_list)

    stats_parser = subparsers.add_parser("stats", help="Collection statistics")
    stats_parser.set_defaults(func=cmd_stats)

    # =================
    # IMPORT / EXPORT
    # =================
    export_parser = subparsers.add_parser("export", help="Export a JSON backup")
    export_parser.add_argument("file", nargs="?", help="Output file (default: linknest-backup-DATE.json)")
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser("import", help="Replace everything with a JSON backup")
    import_parser.add_argument("file", help="Backup file")
    import_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    import_parser.set_defaults(func=cmd_import)

    # =================
    # SUGGEST GROUP
    # =================
    suggest_parser = subparsers.add_parser("suggest", help="AI suggestions")
    suggest_subparsers = suggest_parser.add_subparsers(dest="suggest_command", required=True)

    suggest_details = suggest_subparsers.add_parser("details", help="Suggest title, description and tags")
    suggest_details.add_argument("url", help="URL to describe")
    suggest_details.set_defaults(func=cmd_suggest_details)

    suggest_organize = suggest_subparsers.add_parser("organize", help="Suggest folders for unfiled links")
    suggest_organize.add_argument("--apply", action="store_true", help="Move links into the suggested folders")
    suggest_organize.set_defaults(func=cmd_suggest_organize)

    # =================
    # CONFIG GROUP
    # =================
    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_parser.add_argument("action", choices=["show", "set", "init"], help="Config action")
    config_parser.add_argument("key", nargs="?", help="Config key")
    config_parser.add_argument("value", nargs="?", help="Config value (for set)")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config_args = {}
    if args.output:
        config_args["output_format"] = args.output
    if args.config:
        config_args["config_file"] = Path(args.config)

    config = init_config(database=args.db, **config_args)
    console.no_color = not config.color_output

    logging.basicConfig(level=config.log_level.upper(), format='%(levelname)s: %(message)s')

    if not args.output:
        args.output = config.output_format

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except LinkNestError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    except Exception as e:
        logger.debug("Unhandled error", exc_info=True)
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
