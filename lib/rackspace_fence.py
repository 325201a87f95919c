import logging, socket
from collections import namedtuple

import requests.exceptions

from fencing import check_input, ConfigError, AuthError, ConnectivityError, \
    InvalidTarget, NotFound, ProviderError, FenceError, log

DEVICE_OPT = ["rsc_username", "rsc_apikey", "rsc_region", "rsc_authurl",
              "rsc_apitimeout", "rsc_debug_file", "rsc_verbose"]

FENCED = "fenced"
NO_ACTION_NEEDED = "no-action-needed"
REACHABLE = "reachable"

ACTIVE = "ACTIVE"
AUTH_FAILURE_CODES = [401, 403]

Credentials = namedtuple("Credentials", ["username", "apikey", "region", "auth_url", "timeout"])

Node = namedtuple("Node", ["id", "name", "state", "active", "handle"])


class Result(namedtuple("Result", ["outcome", "node", "error"])):
    """Outcome of a fencing engine operation.

    ``node`` is the server the operation acted on, if one was located.
    ``error`` is the FenceError that stopped the operation, None on success.
    """
    __slots__ = ()

    @property
    def success(self):
        return self.error is None


def get_credentials(options):
    check_input(DEVICE_OPT, options)

    return Credentials(
        username=options["rsc_username"],
        apikey=options["rsc_apikey"],
        region=options["rsc_region"].strip().lower(),
        auth_url=options.get("rsc_authurl") or None,
        timeout=int(options.get("rsc_apitimeout", 60)),
    )


class ComputeProvider(object):
    """Node management API of a cloud platform.

    connect() returns an opaque session which is handed back to
    list_nodes(). hard_reboot() raises on any failure.
    """

    def connect(self, credentials):
        raise NotImplementedError

    def list_nodes(self, session):
        raise NotImplementedError

    def hard_reboot(self, node):
        raise NotImplementedError


class LibcloudProvider(ComputeProvider):
    """ComputeProvider backed by the libcloud Rackspace next-gen driver."""

    def connect(self, credentials):
        from libcloud.common.exceptions import BaseHTTPError
        from libcloud.common.types import InvalidCredsError, LibcloudError
        from libcloud.compute.providers import get_driver
        from libcloud.compute.types import Provider

        kwargs = {"region": credentials.region, "timeout": credentials.timeout}
        if credentials.auth_url:
            kwargs["ex_force_auth_url"] = credentials.auth_url

        try:
            driver = get_driver(Provider.RACKSPACE)(credentials.username, credentials.apikey, **kwargs)
        except ValueError as e:
            raise ConfigError(str(e))

        try:
            # authentication is lazy in libcloud, fetching the catalog forces it
            driver.connection.get_service_catalog()
        except InvalidCredsError as e:
            raise AuthError(str(e))
        except BaseHTTPError as e:
            if e.code in AUTH_FAILURE_CODES:
                raise AuthError(str(e))
            raise ConnectivityError("HTTP %s: %s" % (e.code, e))
        except (requests.exceptions.RequestException, socket.error) as e:
            raise ConnectivityError(str(e))
        except LibcloudError as e:
            raise ConnectivityError(str(e))

        return driver

    def list_nodes(self, session):
        from libcloud.compute.base import Node as LibcloudNode
        from libcloud.compute.types import NodeState

        # libcloud folds ACTIVE and VERIFY_RESIZE into RUNNING, the raw status is kept here
        servers = session.connection.request("/servers/detail").object["servers"]
        return [Node(id=server["id"], name=server["name"], state=server["status"],
                     active=(server["status"] == ACTIVE),
                     handle=LibcloudNode(server["id"], server["name"],
                                         session.NODE_STATE_MAP.get(server["status"], NodeState.UNKNOWN),
                                         [], [], session))
                for server in servers]

    def hard_reboot(self, node):
        result = node.handle.driver.ex_hard_reboot_node(node.handle)
        if not result:
            raise ProviderError("Reboot request for %s was not accepted" % (node.id))
        return result


class FencingEngine(object):
    """Resolve a node by name and fence it through a ComputeProvider.

    fence() and probe() never raise FenceError and never exit; the command
    dispatcher turns their Result into an exit code.
    """

    def __init__(self, provider):
        self.provider = provider

    def authenticate(self, options):
        """Open a provider session.

        Raises ConfigError before any network call when a required setting
        is missing, AuthError when the credentials are rejected and
        ConnectivityError when the identity service can not be reached.
        """
        credentials = get_credentials(options)

        logging.debug("Attempting to authenticate to Rackspace API with account %s in region %s",
                      credentials.username, credentials.region)
        try:
            session = self.provider.connect(credentials)
        except AuthError:
            logging.error("Authentication failure for account %s in region %s",
                          credentials.username, credentials.region)
            raise
        except ConnectivityError as e:
            logging.error("Couldn't establish a connection to the identity service: %s", e)
            raise
        except ConfigError as e:
            logging.error("Invalid configuration for region %s: %s", credentials.region, e)
            raise
        except Exception as e:
            logging.error("Couldn't establish a connection to the identity service: %s", e)
            raise ConnectivityError(str(e))

        return session

    def locate(self, session, name):
        """Return the first node called exactly `name`, or None."""
        if not name:
            logging.error("No server specified")
            raise InvalidTarget("No server specified")

        logging.debug("Enumerating servers")
        try:
            nodes = self.provider.list_nodes(session)
        except (requests.exceptions.RequestException, socket.error) as e:
            logging.error("Couldn't establish a connection to the compute service: %s", e)
            raise ConnectivityError(str(e))
        except Exception as e:
            logging.error("Unable to enumerate servers: %s", e)
            raise ProviderError(str(e))

        if not nodes:
            logging.debug("Server enumeration found no servers")
            return None

        logging.debug("Looking for '%s'", name)
        matches = [node for node in nodes if node.name == name]
        if not matches:
            return None

        if len(matches) > 1:
            logging.warning("%d servers are named '%s', using the first one returned (id %s)",
                            len(matches), name, matches[0].id)
        return matches[0]

    def fence(self, options, name):
        try:
            session = self.authenticate(options)
            node = self.locate(session, name)
        except FenceError as e:
            return Result(e.outcome, None, e)

        if node is None:
            logging.error("Server '%s' not found", name)
            error = NotFound("Server '%s' not found" % (name))
            return Result(error.outcome, None, error)

        if not node.active:
            log("notice", "Server %s state is %s - no action required" % (node.name, node.state))
            return Result(NO_ACTION_NEEDED, node, None)

        log("notice", "Fencing server '%s'" % (node.name))
        logging.debug("Server state is ACTIVE, sending reset command")
        try:
            result = self.provider.hard_reboot(node)
        except Exception as e:
            logging.error("Reboot of server '%s' (id %s) failed: %s", node.name, node.id, e)
            return Result(ProviderError.outcome, node, ProviderError(str(e)))

        logging.debug("Reboot call returned: %s", result)
        return Result(FENCED, node, None)

    def probe(self, options):
        try:
            self.authenticate(options)
        except FenceError as e:
            return Result(e.outcome, None, e)

        return Result(REACHABLE, None, None)
