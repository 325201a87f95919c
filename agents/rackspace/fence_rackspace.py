#!/usr/bin/python3

import sys
import os
import socket
import logging
import atexit

from fencing import *
from fencing import EC_OK, EC_GENERIC_ERROR, UnrecognizedOperation
from rackspace_fence import DEVICE_OPT, FencingEngine, LibcloudProvider, FENCED

CONFIG_NAMES = ["RSC_REGION", "RSC_USERNAME", "RSC_APIKEY", "RSC_SERVERNAME"]

docs = {}
docs["agent_name"] = "rackspace"
docs["shortdesc"] = "STONITH via Rackspace Cloud API"
docs["longdesc"] = "fence_rackspace is an external STONITH plugin which \
fences Rackspace Cloud (next generation) servers by sending a hard reboot \
request through the Rackspace Cloud API. Servers which are not ACTIVE are \
left alone."
docs["vendorurl"] = "http://www.rackspace.com/"


def reset(engine, options, target):
    if not target:
        logging.error("No server specified")
        return EC_GENERIC_ERROR

    result = engine.fence(options, target)
    if not result.success:
        return EC_GENERIC_ERROR

    if result.outcome == FENCED:
        print("Success: Rebooted")
    else:
        print("Success: Already %s" % (result.node.state.upper()))
    return EC_OK


def status(engine, options, target):
    # status is about the fencing device (the API), not about the target
    return EC_OK if engine.probe(options).success else EC_GENERIC_ERROR


def gethosts(engine, options, target):
    print(socket.gethostname())
    return EC_OK


def getconfignames(engine, options, target):
    print("\n".join(CONFIG_NAMES))
    return EC_OK


def getinfo(key):
    def show(engine, options, target):
        print(docs[key])
        return EC_OK
    return show


def getinfo_xml(engine, options, target):
    metadata(DEVICE_OPT)
    return EC_OK


OPERATIONS = {
    "reset": reset,
    "on": reset,
    "status": status,
    "gethosts": gethosts,
    "getconfignames": getconfignames,
    "getinfo-devid": getinfo("agent_name"),
    "getinfo-devname": getinfo("shortdesc"),
    "getinfo-devdescr": getinfo("longdesc"),
    "getinfo-devurl": getinfo("vendorurl"),
    "getinfo-xml": getinfo_xml,
}


def get_operation(operation):
    if not operation:
        raise UnrecognizedOperation("No command specified")
    if operation not in OPERATIONS:
        raise UnrecognizedOperation("Command %s not implemented" % (operation))
    return OPERATIONS[operation]


def dispatch(args, environ, provider=None):
    operation = args[0] if len(args) > 0 else None
    target = args[1] if len(args) > 1 else None

    try:
        handler = get_operation(operation)
    except UnrecognizedOperation as e:
        logging.error("%s", e)
        return EC_GENERIC_ERROR

    options = process_input(DEVICE_OPT, environ)
    engine = FencingEngine(provider if provider is not None else LibcloudProvider())

    return handler(engine, options, target)


def main():
    atexit.register(atexit_handler)

    configure_logging(process_input(DEVICE_OPT))

    sys.exit(dispatch(sys.argv[1:], os.environ))


if __name__ == "__main__":
    main()
