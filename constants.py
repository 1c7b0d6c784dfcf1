# Constants used across the application

# Every REST call carries this api-version query parameter
API_VERSION = "6.0"

# Work item detail requests accept at most 200 ids per call
WORK_ITEM_BATCH_SIZE = 200

# Default seconds before an API request is abandoned
DEFAULT_REQUEST_TIMEOUT = 30

# Worker threads used when collections are queried concurrently
DEFAULT_MAX_WORKERS = 4

# Minutes between scheduled configuration checks in jobs.py
DEFAULT_REFRESH_MINUTES = 15

# Selector value meaning "every project" or "every team"; never sent to the API
ALL = "all"

# Process template names as configured on the server. Override in config.yml.
WORK_ITEM_TYPE = "用户情景"
STATE_RESOLVED = "已解决"
STATE_CLOSED = "已关闭"
STATE_REMOVED = "已删除"

# Fallbacks for missing fields
UNKNOWN_MEMBER = "Unknown member"
UNASSIGNED = "Unassigned"
UNTITLED = "Untitled"
UNKNOWN_STATE = "Unknown"
EMPTY_VALUE = "-"

# Field projection requested for every work item
WORK_ITEM_FIELDS = [
    "System.Id",
    "System.Title",
    "System.AssignedTo",
    "System.State",
    "System.WorkItemType",
    "System.Description",
    "System.CreatedDate",
    "System.CreatedBy",
    "System.ChangedDate",
    "System.ChangedBy",
    "Microsoft.VSTS.Common.Priority",
    "System.AreaPath",
    "System.IterationPath",
    "Microsoft.VSTS.Scheduling.StartDate",
    "Microsoft.VSTS.Scheduling.TargetDate",
    "Microsoft.VSTS.Common.StateChangeDate",
]

# Chart colour per stacked state
# state: rgba fill
STATE_PALETTE = {
    "新建": "rgba(59, 130, 246, 0.5)",
    "进行中": "rgba(16, 185, 129, 0.5)",
    "待评审": "rgba(245, 158, 11, 0.5)",
    "已解决": "rgba(107, 114, 128, 0.5)",
}
