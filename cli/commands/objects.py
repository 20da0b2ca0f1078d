# cli/commands/objects.py
"""Generic object commands: apply, get, delete and release."""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import yaml

from cli.store import open_store, resolve_kind, run
from quotapool.admission.hooks import (
    AdmissionResponse,
    mutate_pool,
    validate_claim_create,
    validate_claim_delete,
    validate_claim_update,
    validate_pool,
)
from quotapool.api.claim import CLAIM_KIND, RELEASE_LABEL, Claim
from quotapool.api.meta import Resource
from quotapool.api.pool import POOL_KIND, Pool
from quotapool.api.registry import Scheme
from quotapool.coordination.retry import compare_and_swap
from quotapool.errors import InvalidObjectError
from quotapool.storage.interface import NotFoundError, VersionedStore


DEFAULT_NAMESPACE = "default"


def _load_documents(path: Path) -> List[Dict[str, Any]]:
    with open(path) as f:
        return [doc for doc in yaml.safe_load_all(f) if doc]


async def _admit(store: VersionedStore, obj: Resource) -> AdmissionResponse:
    """Run the admission hooks for an object about to be applied."""
    if isinstance(obj, Pool):
        mutated = mutate_pool(obj)
        pool = mutated.patched or obj
        response = validate_pool(pool)
        if response.allowed:
            response.patched = pool
        return response

    if isinstance(obj, Claim):
        try:
            current = await store.get(CLAIM_KIND, obj.name, obj.namespace)
        except NotFoundError:
            return validate_claim_create(obj)
        return validate_claim_update(current, obj)

    return AdmissionResponse.allow()


def _render(objects: List[Resource], scheme: Scheme, output: str) -> str:
    documents = [scheme.encode(obj) for obj in objects]
    if output == 'json':
        payload = documents[0] if len(documents) == 1 else documents
        return json.dumps(payload, indent=2)
    return yaml.safe_dump_all(documents, sort_keys=False).rstrip()


def _summary(obj: Resource) -> str:
    if isinstance(obj, Pool):
        return (
            f"{obj.name:<24} namespaces={obj.status.namespace_count} "
            f"claims={obj.status.claim_count}"
        )
    if isinstance(obj, Claim):
        condition = obj.status.condition
        state = f"{condition.type}={condition.status.value}" if condition else "Pending"
        return f"{obj.namespace}/{obj.name:<24} pool={obj.spec.pool} {state}"
    if obj.namespace:
        return f"{obj.namespace}/{obj.name}"
    return obj.name


# ============================================================================
# Commands
# ============================================================================

@click.command()
@click.option('--filename', '-f', 'filename', required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='YAML file with one or more objects')
@click.pass_context
def apply(ctx: click.Context, filename: Path):
    """Create or update objects from a YAML file."""
    scheme = ctx.obj['scheme']

    try:
        documents = _load_documents(filename)
    except yaml.YAMLError as e:
        click.echo(f"❌ Could not parse {filename}: {e}", err=True)
        sys.exit(1)

    async def _apply() -> int:
        failures = 0
        async with open_store(ctx.obj['database_url'], scheme) as store:
            for document in documents:
                try:
                    obj = scheme.decode(document)
                except InvalidObjectError as e:
                    click.echo(f"❌ {e}", err=True)
                    failures += 1
                    continue

                if obj.namespace is None and scheme.is_namespaced(obj.kind):
                    obj.metadata.namespace = DEFAULT_NAMESPACE

                response = await _admit(store, obj)
                if not response.allowed:
                    click.echo(f"❌ {obj.kind}/{obj.name} denied: {response.message}", err=True)
                    failures += 1
                    continue

                stored = await store.apply(response.patched or obj)
                click.echo(f"✅ {stored.kind}/{stored.name} applied")
        return failures

    if run(_apply()):
        sys.exit(1)


@click.command()
@click.argument('kind')
@click.argument('name', required=False)
@click.option('--namespace', '-n', help='Namespace of namespaced objects')
@click.option('--output', '-o', type=click.Choice(['summary', 'yaml', 'json']), default='summary',
              help='Output format')
@click.pass_context
def get(ctx: click.Context, kind: str, name: Optional[str], namespace: Optional[str], output: str):
    """Show one object, or list every object of a kind."""
    scheme = ctx.obj['scheme']
    kind = resolve_kind(kind, scheme)

    async def _get() -> List[Resource]:
        async with open_store(ctx.obj['database_url'], scheme) as store:
            if name:
                ns = (namespace or DEFAULT_NAMESPACE) if scheme.is_namespaced(kind) else None
                return [await store.get(kind, name, ns)]
            return await store.list(kind, namespace)

    try:
        objects = run(_get())
    except NotFoundError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    if not objects:
        click.echo(f"📭 No {kind} objects found")
        return

    if output == 'summary':
        for obj in objects:
            click.echo(_summary(obj))
        return
    click.echo(_render(objects, scheme, output))


@click.command()
@click.argument('kind')
@click.argument('name')
@click.option('--namespace', '-n', help='Namespace of namespaced objects')
@click.option('--force', is_flag=True, help='Delete a claim even while it is bound')
@click.pass_context
def delete(ctx: click.Context, kind: str, name: str, namespace: Optional[str], force: bool):
    """Delete an object.

    Pools and claims are marked for deletion and finalized by the next
    reconcile, which releases whatever they hold.
    """
    scheme = ctx.obj['scheme']
    kind = resolve_kind(kind, scheme)
    ns = (namespace or DEFAULT_NAMESPACE) if scheme.is_namespaced(kind) else None

    async def _delete() -> Optional[str]:
        async with open_store(ctx.obj['database_url'], scheme) as store:
            obj = await store.get(kind, name, ns)

            if isinstance(obj, Claim) and not force:
                response = validate_claim_delete(obj)
                if not response.allowed:
                    return response.message

            if kind in (POOL_KIND, CLAIM_KIND):
                await store.mark_deleted(kind, name, ns)
            else:
                await store.delete(kind, name, ns)
        return None

    try:
        denied = run(_delete())
    except NotFoundError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    if denied:
        click.echo(f"❌ {denied}", err=True)
        click.echo("💡 Use --force to delete anyway", err=True)
        sys.exit(1)

    click.echo(f"🗑️  {kind}/{name} deleted")


@click.command()
@click.argument('name')
@click.option('--namespace', '-n', default=DEFAULT_NAMESPACE, help='Namespace of the claim')
@click.pass_context
def release(ctx: click.Context, name: str, namespace: str):
    """Ask the pool to unbind a claim and return it to the queue."""
    scheme = ctx.obj['scheme']

    def mark(claim: Claim) -> Optional[Claim]:
        if claim.is_released():
            return None
        claim.metadata.labels[RELEASE_LABEL] = "true"
        return claim

    async def _release() -> None:
        async with open_store(ctx.obj['database_url'], scheme) as store:
            await compare_and_swap(
                read=lambda: store.get(CLAIM_KIND, name, namespace),
                write=store.update,
                mutate=mark,
                policy=ctx.obj['settings'].retry_policy(),
                description=f"{CLAIM_KIND} {namespace}/{name}",
            )

    try:
        run(_release())
    except NotFoundError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"🔓 {namespace}/{name} marked for release")
