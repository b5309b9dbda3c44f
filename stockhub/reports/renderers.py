import csv
import io

from rest_framework.renderers import BaseRenderer


class CSVRenderer(BaseRenderer):
    """
    Lets ?format=csv through content negotiation.

    Report views build their own CSV responses; this renders whatever else
    ends up in a csv-negotiated response (errors, plain rows).
    """
    media_type = 'text/csv'
    format = 'csv'
    charset = 'utf-8'

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if data is None:
            return b''
        if isinstance(data, (str, bytes)):
            return data if isinstance(data, bytes) else data.encode(self.charset)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        if isinstance(data, dict):
            for key, value in data.items():
                writer.writerow([key, value])
        else:
            rows = list(data)
            if rows and isinstance(rows[0], dict):
                header = list(rows[0].keys())
                writer.writerow(header)
                for row in rows:
                    writer.writerow([row.get(column) for column in header])
            else:
                writer.writerows(rows)
        return buffer.getvalue().encode(self.charset)
