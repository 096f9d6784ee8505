# powervs_csi

Building blocks for a block storage CSI driver running on Power Virtual
Server instances. The package has no runtime dependencies beyond the
Python standard library.

## Modules

- **`powervs_csi.options`** – `get_options(argv=None)` parses the driver's
  arguments (without the program name; `sys.argv[1:]` by default) into an
  `Options` value holding the driver `Mode` (`controller`, `node` or `all`),
  a `ServerOptions` (`endpoint`, `debug`, `kubeconfig`, `cloudconfig`) and a
  `NodeOptions` (`volume_attach_limit`, default `-1`). The first argument may
  name the mode; without one the mode is `all`. The node flag
  `-volume-attach-limit` is only accepted in `node` and `all` modes. Flags
  can be written with one or two dashes. An unknown command raises
  `SystemExit(1)`; `-version` prints version information as JSON and raises
  `SystemExit(0)`. Both option classes register their flags on an
  `argparse` parser through `add_flags`, storing parsed values straight on
  the object.
- **`powervs_csi.cloud`** – the abstract `Cloud` interface, the `Disk`,
  `DiskOptions` and `PVMInstance` records, the `NotFoundError` and
  `AlreadyExistsError` exceptions, and `new_node_update_scope(params,
  cloud_factory)`, which checks that a `NodeUpdateScopeParams` has a service
  instance ID, an instance ID and a zone (raising `ValueError` otherwise)
  and builds a `NodeUpdateScope` around the cloud returned by
  `cloud_factory(service_instance_id, zone, debug)`.
- **`powervs_csi.metadata`** – `tokenize_provider_id` splits a provider ID of
  the form
  `ibmpowervs://<region>/<zone>/<service_instance_id>/<powervs_machine_id>`
  into a frozen `Metadata` value and raises `MetadataError` when the shape is
  wrong or a part is empty. `get_instance_info_from_provider_id`,
  `kubernetes_api_instance_info` (which reads the node name from
  `CSI_NODE_NAME`) and `new_metadata_service` look the provider ID up
  through a client object whose `get_node(name)` returns the node as a
  mapping.
- **`powervs_csi.nodeupdate`** – `NodeUpdateReconciler(client,
  cloud_factory).reconcile(name, namespace)` fetches a node, resolves its
  PowerVS instance and, when the instance is `ACTIVE` or `SHUTOFF` and still
  has storage pool affinity on, turns it off. A missing node
  (`NodeNotFoundError` from the client) is ignored; other failures raise
  `ReconcileError`.
- **`powervs_csi.multipath`** – wrappers around `dmsetup` and `multipathd`:
  counting the active paths of a map, disabling queueing, removing a map
  (never the root map `mpatha`), and deleting SCSI devices that multipathd
  reports as orphans. Also reads device-mapper names and UUIDs from
  `/sys/block`. Failures raise `MultipathError`.
- **`powervs_csi.device`** – the `Device` class (a `LinuxDevice`), which finds
  the `/dev/mapper` entry for a volume WWN, removes maps that have no active
  paths, rescans SCSI hosts until the device appears (`create_device`) and
  removes it again with retries (`delete_device`). `get_device_wwn` returns
  the WWN behind a `/dev/dm-N` or `/dev/mapper/...` path. Failures raise
  `DeviceError`.

The device and multipath modules drive real Linux tools and sysfs files, so
they need root on a Linux host with device-mapper multipath installed.

## Example

```python
from powervs_csi.metadata import MetadataError, tokenize_provider_id
from powervs_csi.options import Mode, get_options

options = get_options(["node", "-volume-attach-limit=42"])
assert options.driver_mode is Mode.NODE
assert options.node_options.volume_attach_limit == 42

try:
    tokenize_provider_id("ibmpowervs://region//instance/machine")
except MetadataError as exc:
    print(exc)  # ... err: zone can't be empty
```

## What the package does not do

- It has no CSI gRPC server and installs no command; `get_options` only
  parses arguments.
- It has no concrete `Cloud` implementation talking to the PowerVS API and
  no Kubernetes client: both are passed in by the caller.
- `NodeUpdateReconciler` handles one node per `reconcile` call; it does not
  watch the cluster or run a controller loop.
- It does not format, mount or unmount file systems.

## Tests

The test suite uses pytest; install the `test` extra to get it.