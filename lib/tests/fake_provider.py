import os, sys

sys.path.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".."))
from rackspace_fence import ComputeProvider, Node

def make_node(name, state="ACTIVE", node_id=None):
	return Node(id=node_id or "id-" + name, name=name, state=state,
			active=(state == "ACTIVE"), handle=None)

class FakeProvider(ComputeProvider):
	""" In-memory compute provider with scripted nodes and failure injection """
	def __init__(self, nodes=None, connect_error=None, list_error=None, reboot_error=None):
		self.nodes = nodes or []
		self.connect_error = connect_error
		self.list_error = list_error
		self.reboot_error = reboot_error
		self.connected = []
		self.listed = 0
		self.rebooted = []

	def connect(self, credentials):
		self.connected.append(credentials)
		if self.connect_error:
			raise self.connect_error
		return "session"

	def list_nodes(self, session):
		self.listed += 1
		if self.list_error:
			raise self.list_error
		return list(self.nodes)

	def hard_reboot(self, node):
		self.rebooted.append(node)
		if self.reboot_error:
			raise self.reboot_error
		return True

	def network_calls(self):
		return len(self.connected) + self.listed + len(self.rebooted)
