import asyncio
import dataclasses
import functools
from collections.abc import Awaitable, Callable
from typing import IO, Any

import click
import yaml

from kapi.clients import api, clientsets, errors
from kapi.engines import loggers
from kapi.structs import configuration, credentials, options, references


@dataclasses.dataclass()
class CLIControls:
    """ Controls, which are impossible to pass via CLI (e.g. in tests). """
    executor: api.Executor | None = None
    settings: configuration.ClientSettings | None = None


@dataclasses.dataclass(frozen=True)
class CLIConnection:
    info: credentials.ConnectionInfo
    settings: configuration.ClientSettings


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


class PatchTypeParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in options.PatchType])

    def convert(self, value: Any, param: Any, ctx: Any) -> options.PatchType:
        if isinstance(value, options.PatchType):
            return value
        name: str = super().convert(value, param, ctx)
        return options.PatchType[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='plain')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.PLAIN,
                log_prefix: bool | None = None,
                log_refkey: str | None = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


def connection_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to connect to the API server in all commands the same way."""
    @click.option('-s', '--server', required=True, envvar='KAPI_SERVER')
    @click.option('--token', type=str, envvar='KAPI_TOKEN')
    @click.option('--ca-file', type=click.Path(exists=True, dir_okay=False), envvar='KAPI_CA_FILE')
    @click.option('--insecure', is_flag=True, envvar='KAPI_INSECURE')
    @click.option('--request-timeout', type=float)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(server: str, token: str | None, ca_file: str | None, insecure: bool,
                request_timeout: float | None,
                *args: Any, **kwargs: Any) -> Any:
        controls = click.get_current_context().ensure_object(CLIControls)
        settings = controls.settings if controls.settings is not None else configuration.ClientSettings()
        if request_timeout is not None:
            settings.networking.request_timeout = request_timeout
        info = credentials.ConnectionInfo(server=server, token=token, ca_path=ca_file, insecure=insecure)
        return fn(*args, connection=CLIConnection(info=info, settings=settings), **kwargs)

    return wrapper


class ResourceParamType(click.ParamType):
    name = 'resource'

    def convert(self, value: Any, param: Any, ctx: Any) -> references.Resource:
        if isinstance(value, references.Resource):
            return value
        try:
            return references.parse_resource(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


@click.version_option(prog_name='kapi')
@click.group(name='kapi', context_settings=dict(
    auto_envvar_prefix='KAPI',
))
def main() -> None:
    pass


@main.command()
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str)
@click.option('--cluster-scoped', is_flag=True)
@click.argument('resource', type=ResourceParamType())
@click.argument('name')
def get(
        connection: CLIConnection,
        resource: references.Resource,
        name: str,
        namespace: str | None,
        cluster_scoped: bool,
) -> None:
    """ Get an object by its name. """
    resource = _scoped(resource, cluster_scoped)
    namespace = _namespace(resource, namespace, clusterwide=False)

    async def fn(clientset: clientsets.Clientset) -> None:
        obj = await clientset.resources(resource, namespace).get(name)
        _dump(obj)

    _run(connection, fn)


@main.command(name='list')
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str)
@click.option('-A', '--all-namespaces', 'clusterwide', is_flag=True)
@click.option('--cluster-scoped', is_flag=True)
@click.option('-l', '--selector', 'label_selector', type=str)
@click.option('--field-selector', type=str)
@click.option('--limit', type=int)
@click.argument('resource', type=ResourceParamType())
def list_(
        connection: CLIConnection,
        resource: references.Resource,
        namespace: str | None,
        clusterwide: bool,
        cluster_scoped: bool,
        label_selector: str | None,
        field_selector: str | None,
        limit: int | None,
) -> None:
    """ List the objects, all pages of them. """
    resource = _scoped(resource, cluster_scoped)
    namespace = _namespace(resource, namespace, clusterwide=clusterwide)
    list_options = options.ListOptions(
        label_selector=label_selector,
        field_selector=field_selector,
        limit=limit,
    )

    async def fn(clientset: clientsets.Clientset) -> None:
        client = clientset.resources(resource, namespace)
        items: list[Any] = []
        result = await client.list(list_options)
        items.extend(result.items)
        while result.continue_token:
            list_options_ = dataclasses.replace(list_options, continue_token=result.continue_token)
            result = await client.list(list_options_)
            items.extend(result.items)
        _dump(dict(apiVersion='v1', kind='List', items=items))

    _run(connection, fn)


@main.command()
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str)
@click.option('-A', '--all-namespaces', 'clusterwide', is_flag=True)
@click.option('--cluster-scoped', is_flag=True)
@click.option('-l', '--selector', 'label_selector', type=str)
@click.option('--field-selector', type=str)
@click.option('--resource-version', type=str)
@click.option('-t', '--timeout', 'timeout_seconds', type=int)
@click.argument('resource', type=ResourceParamType())
def watch(
        connection: CLIConnection,
        resource: references.Resource,
        namespace: str | None,
        clusterwide: bool,
        cluster_scoped: bool,
        label_selector: str | None,
        field_selector: str | None,
        resource_version: str | None,
        timeout_seconds: int | None,
) -> None:
    """ Print the changes of the objects as they happen. """
    resource = _scoped(resource, cluster_scoped)
    namespace = _namespace(resource, namespace, clusterwide=clusterwide)
    list_options = options.ListOptions(
        label_selector=label_selector,
        field_selector=field_selector,
        resource_version=resource_version,
        timeout_seconds=timeout_seconds,
    )

    async def fn(clientset: clientsets.Clientset) -> None:
        handle = await clientset.resources(resource, namespace).watch(list_options)
        async with handle:
            async for event in handle:
                if event.error is not None:
                    raise event.error
                _dump(dict(type=event.type.value, object=event.object), explicit_start=True)

    _run(connection, fn)


@main.command()
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str)
@click.option('--cluster-scoped', is_flag=True)
@click.option('-f', '--filename', 'file', type=click.File('r'), required=True)
@click.argument('resource', type=ResourceParamType())
def create(
        connection: CLIConnection,
        resource: references.Resource,
        namespace: str | None,
        cluster_scoped: bool,
        file: IO[str],
) -> None:
    """ Create an object from a YAML/JSON file. """
    resource = _scoped(resource, cluster_scoped)
    body = _load(file)
    namespace = _namespace(resource, namespace or _body_namespace(body), clusterwide=False)

    async def fn(clientset: clientsets.Clientset) -> None:
        obj = await clientset.resources(resource, namespace).create(body)
        _dump(obj)

    _run(connection, fn)


@main.command()
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str)
@click.option('--cluster-scoped', is_flag=True)
@click.option('--subresource', type=str)
@click.option('-f', '--filename', 'file', type=click.File('r'), required=True)
@click.argument('resource', type=ResourceParamType())
def replace(
        connection: CLIConnection,
        resource: references.Resource,
        namespace: str | None,
        cluster_scoped: bool,
        subresource: str | None,
        file: IO[str],
) -> None:
    """ Replace an object (or its subresource) as a whole from a YAML/JSON file. """
    resource = _scoped(resource, cluster_scoped)
    body = _load(file)
    namespace = _namespace(resource, namespace or _body_namespace(body), clusterwide=False)

    async def fn(clientset: clientsets.Clientset) -> None:
        client = clientset.resources(resource, namespace)
        if subresource:
            obj = await client.update_subresource(subresource, body)
        else:
            obj = await client.update(body)
        _dump(obj)

    _run(connection, fn)


@main.command()
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str)
@click.option('--cluster-scoped', is_flag=True)
@click.option('--grace-period', 'grace_period_seconds', type=int)
@click.option('--cascade', 'propagation_policy',
              type=click.Choice([v.value.lower() for v in options.PropagationPolicy]))
@click.option('--dry-run', is_flag=True)
@click.argument('resource', type=ResourceParamType())
@click.argument('name')
def delete(
        connection: CLIConnection,
        resource: references.Resource,
        name: str,
        namespace: str | None,
        cluster_scoped: bool,
        grace_period_seconds: int | None,
        propagation_policy: str | None,
        dry_run: bool,
) -> None:
    """ Delete an object by its name. """
    resource = _scoped(resource, cluster_scoped)
    namespace = _namespace(resource, namespace, clusterwide=False)
    policy = options.PropagationPolicy(propagation_policy.capitalize()) if propagation_policy else None
    delete_options = options.DeleteOptions(
        grace_period_seconds=grace_period_seconds,
        propagation_policy=policy,
        dry_run=dry_run,
    )

    async def fn(clientset: clientsets.Clientset) -> None:
        await clientset.resources(resource, namespace).delete(name, delete_options)
        click.echo(f"{resource.plural}/{name} deleted")

    _run(connection, fn)


@main.command()
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str)
@click.option('--cluster-scoped', is_flag=True)
@click.option('--type', 'patch_type', type=PatchTypeParamType(), default='merge')
@click.option('-p', '--patch', 'data', type=str, required=True)
@click.option('--subresource', 'subresources', multiple=True)
@click.argument('resource', type=ResourceParamType())
@click.argument('name')
def patch(
        connection: CLIConnection,
        resource: references.Resource,
        name: str,
        namespace: str | None,
        cluster_scoped: bool,
        patch_type: options.PatchType,
        data: str,
        subresources: tuple[str, ...],
) -> None:
    """ Patch an object with a raw patch of a specific type. """
    resource = _scoped(resource, cluster_scoped)
    namespace = _namespace(resource, namespace, clusterwide=False)

    async def fn(clientset: clientsets.Clientset) -> None:
        obj = await clientset.resources(resource, namespace).patch(name, patch_type, data, *subresources)
        _dump(obj)

    _run(connection, fn)


def _run(
        connection: CLIConnection,
        fn: Callable[[clientsets.Clientset], Awaitable[None]],
) -> None:
    controls = click.get_current_context().ensure_object(CLIControls)

    async def _main() -> None:
        if controls.executor is not None:
            clientset = clientsets.Clientset(controls.executor, connection.settings)
        else:
            clientset = clientsets.Clientset.connect(connection.info, connection.settings)
        async with clientset:
            await fn(clientset)

    try:
        asyncio.run(_main())
    except errors.APIError as e:
        raise click.ClickException(str(e)) from e


def _scoped(resource: references.Resource, cluster_scoped: bool) -> references.Resource:
    return dataclasses.replace(resource, namespaced=False) if cluster_scoped else resource


def _namespace(
        resource: references.Resource,
        namespace: str | None,
        *,
        clusterwide: bool,
) -> references.Namespace:
    if namespace and clusterwide:
        raise click.UsageError("Either --namespace or --all-namespaces can be used, not both.")
    if namespace and not resource.namespaced:
        raise click.UsageError(f"Namespaces are not supported for cluster-scoped {resource!r}.")
    if not resource.namespaced or clusterwide:
        return None
    return references.NamespaceName(namespace or 'default')


def _body_namespace(body: Any) -> str | None:
    metadata = body.get('metadata') if isinstance(body, dict) else None
    return metadata.get('namespace') if isinstance(metadata, dict) else None


def _load(file: IO[str]) -> Any:
    try:
        body = yaml.safe_load(file)  # JSON is YAML too.
    except yaml.YAMLError as e:
        raise click.BadParameter(f"Cannot parse the file: {e}", param_hint='--filename') from e
    if not isinstance(body, dict):
        raise click.BadParameter("The file must contain a single object.", param_hint='--filename')
    return body


def _dump(obj: Any, *, explicit_start: bool = False) -> None:
    click.echo(yaml.safe_dump(obj, explicit_start=explicit_start, sort_keys=False), nl=False)
