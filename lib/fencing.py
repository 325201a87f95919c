import sys, os, re, syslog
import logging
import shutil
import subprocess

__all__ = ['atexit_handler', 'check_input', 'process_input', 'all_opt', 'metadata',
		'configure_logging', 'log']

EC_OK = 0
EC_GENERIC_ERROR = 1

LOG_FORMAT = "%(asctime)-15s %(levelname)s: %(message)s"

## ha_log.sh knows only about these levels, everything else is a 'notice'
NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

HA_LOG_LEVELS = {
	"crit" : logging.CRITICAL,
	"err" : logging.ERROR,
	"error" : logging.ERROR,
	"warn" : logging.WARNING,
	"warning" : logging.WARNING,
	"notice" : NOTICE,
	"info" : logging.INFO,
	"debug" : logging.DEBUG,
}

all_opt = {
	"rsc_username" : {
		"type" : "string",
		"required" : "1",
		"shortdesc" : "Rackspace Cloud username",
		"longdesc" : "Name of the Rackspace Cloud account used to authenticate "
			"against the identity service.",
		"order" : 1},
	"rsc_apikey" : {
		"type" : "string",
		"required" : "1",
		"shortdesc" : "Rackspace Cloud API key",
		"longdesc" : "API key belonging to rsc_username.",
		"order" : 2},
	"rsc_region" : {
		"type" : "string",
		"required" : "1",
		"shortdesc" : "Rackspace Cloud region",
		"longdesc" : "Region code of the cloud servers, e.g. LON, DFW, ORD, IAD, SYD or HKG.",
		"order" : 3},
	"rsc_authurl" : {
		"type" : "string",
		"required" : "0",
		"shortdesc" : "Identity service URL",
		"longdesc" : "Override of the identity endpoint used for authentication. "
			"The endpoint matching rsc_region is used when not set.",
		"order" : 4},
	"rsc_apitimeout" : {
		"type" : "integer",
		"required" : "0",
		"shortdesc" : "Timeout in seconds to use for API calls",
		"longdesc" : "Timeout in seconds applied to every request sent to the "
			"identity and compute services.",
		"default" : "60",
		"order" : 5},
	"rsc_debug_file" : {
		"type" : "string",
		"required" : "0",
		"shortdesc" : "Write debug information to given file",
		"longdesc" : "Path of a file which receives every log message, "
			"including the debug ones.",
		"order" : 50},
	"rsc_verbose" : {
		"type" : "boolean",
		"required" : "0",
		"shortdesc" : "Verbose mode",
		"longdesc" : "Copy log messages to standard error.",
		"default" : "0",
		"order" : 51},
}

TRUE_VALUES = ["1", "yes", "on", "true"]

class FenceError(Exception):
	outcome = "failed"

class ConfigError(FenceError):
	outcome = "config-error"

class AuthError(FenceError):
	outcome = "auth-failed"

class ConnectivityError(FenceError):
	outcome = "connection-failed"

class InvalidTarget(FenceError):
	outcome = "invalid-target"

class NotFound(FenceError):
	outcome = "not-found"

class ProviderError(FenceError):
	outcome = "provider-error"

class UnrecognizedOperation(FenceError):
	outcome = "unrecognized-operation"

def atexit_handler():
	try:
		sys.stdout.close()
		os.close(1)
	except IOError:
		logging.error("%s failed to close standard output", sys.argv[0])
		sys.exit(EC_GENERIC_ERROR)

def log(level, message):
	logging.log(HA_LOG_LEVELS.get(level, NOTICE), message)

def env_name(key):
	return key.upper()

def metadata(avail_opt):
	sorted_list = [(key, all_opt[key]) for key in set(avail_opt)]
	sorted_list.sort(key=lambda x: (x[1]["order"], x[0]))

	print("<?xml version=\"1.0\" ?>")
	print("<parameters>")
	for (key, opt) in sorted_list:
		default = ""
		if "default" in opt:
			default = " default=\"" + _encode_html_entities(str(opt["default"])) + "\""

		print("<parameter name=\"" + key + "\" unique=\"0\" required=\"" + opt["required"] + "\">")
		print("<content type=\"" + opt.get("type", "string") + "\"" + default + " />")
		print("<shortdesc lang=\"en\">" + _encode_html_entities(opt["shortdesc"]) + "</shortdesc>")
		print("<longdesc lang=\"en\">" + _encode_html_entities(opt.get("longdesc", opt["shortdesc"])) + "</longdesc>")
		print("</parameter>")
	print("</parameters>")

def process_input(avail_opt, environ=None):
	if environ is None:
		environ = os.environ

	options = {"device_opt" : list(avail_opt)}
	for key in avail_opt:
		value = environ.get(env_name(key)) or environ.get(key)
		if value:
			options[key] = value
		elif "default" in all_opt[key]:
			options[key] = all_opt[key]["default"]

	return options

##
## Verify that every required parameter was set and typed values are valid.
## Nothing here touches the fencing device.
######
def check_input(device_opt, options):
	missing = [key for key in device_opt \
			if all_opt[key]["required"] == "1" and not options.get(key)]
	for key in missing:
		logging.error("%s required in environment, but not set", env_name(key))
	if missing:
		raise ConfigError("%s required in environment, but not set" % (env_name(missing[0])))

	for key in _get_opts_with_invalid_types(device_opt, options):
		logging.error("%s must be an integer, got '%s'", env_name(key), options[key])
		raise ConfigError("%s must be an integer" % (env_name(key)))

	return options

def is_true(value):
	return str(value).lower() in TRUE_VALUES

def configure_logging(options):
	root = logging.getLogger()
	root.setLevel(logging.DEBUG)
	formatter = logging.Formatter(LOG_FORMAT)

	## add logging to ha_log.sh (or syslog)
	root.addHandler(HaLogHandler())

	if is_true(options.get("rsc_verbose", "0")):
		## add logging to stderr
		stderrHandler = logging.StreamHandler(sys.stderr)
		stderrHandler.setFormatter(formatter)
		root.addHandler(stderrHandler)

	if options.get("rsc_debug_file"):
		try:
			debug_file = logging.FileHandler(options["rsc_debug_file"])
			debug_file.setLevel(logging.DEBUG)
			debug_file.setFormatter(formatter)
			root.addHandler(debug_file)
		except IOError:
			logging.error("Unable to create file %s", options["rsc_debug_file"])

## Own logger handler that uses old-style syslog handler as otherwise everything is sourced
## from /dev/syslog
class SyslogLibHandler(logging.StreamHandler):
	"""
	A handler class that correctly push messages into syslog
	"""
	def emit(self, record):
		syslog_level = {
			logging.CRITICAL:syslog.LOG_CRIT,
			logging.ERROR:syslog.LOG_ERR,
			logging.WARNING:syslog.LOG_WARNING,
			NOTICE:syslog.LOG_NOTICE,
			logging.INFO:syslog.LOG_INFO,
			logging.DEBUG:syslog.LOG_DEBUG,
			logging.NOTSET:syslog.LOG_DEBUG,
		}.get(record.levelno, syslog.LOG_NOTICE)

		msg = self.format(record)

		# syslog.syslog can not have 0x00 character inside or exception is thrown
		syslog.syslog(syslog_level, msg.replace("\x00", "\n"))
		return

class HaLogHandler(SyslogLibHandler):
	"""
	Deliver messages through the cluster's ha_log.sh helper, so they end up
	wherever the cluster manager sends its own logs. Falls back to syslog
	when the helper is not installed.
	"""
	def __init__(self, ha_log_path=None):
		SyslogLibHandler.__init__(self)
		if ha_log_path is None:
			ha_log_path = shutil.which("ha_log.sh")
		self.ha_log_path = ha_log_path

	def emit(self, record):
		if not self.ha_log_path:
			return SyslogLibHandler.emit(self, record)

		try:
			subprocess.call([self.ha_log_path, _ha_log_level(record.levelno), \
					self.format(record).replace("\x00", "\n")], \
					stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
		except (OSError, subprocess.SubprocessError):
			self.handleError(record)

def _ha_log_level(levelno):
	if levelno >= logging.CRITICAL:
		return "crit"
	elif levelno >= logging.ERROR:
		return "err"
	elif levelno >= logging.WARNING:
		return "warn"
	elif levelno >= NOTICE:
		return "notice"
	elif levelno >= logging.INFO:
		return "info"
	return "debug"

def _encode_html_entities(text):
	return text.replace("&", "&amp;").replace('"', "&quot;").replace('<', "&lt;"). \
		replace('>', "&gt;").replace("'", "&apos;")

def _get_opts_with_invalid_types(device_opt, options):
	options_failed = []
	for key in device_opt:
		if all_opt[key].get("type") == "integer" and key in options:
			if not re.match(r"^\d+$", str(options[key]).strip()):
				options_failed.append(key)
	return options_failed
